"""Resolve file-bearing answers by uploading their files before a response is written."""

from concurrent.futures import ThreadPoolExecutor, as_completed

import structlog

from triddle.models.response import Answer
from triddle.services.blob_store import S3BlobStore, StoredBlob, validate_file
from triddle.utils.exceptions import UploadError
from triddle.utils.request import UploadedFile

logger = structlog.get_logger()

DEFAULT_FILE_VALUE = "uploaded-file"


def response_upload_folder(form_id: str) -> str:
    """Key prefix for the attachments of a form's responses."""
    return f"triddle/responses/{form_id}"


def form_asset_folder(form_id: str) -> str:
    """Key prefix for files a designer attaches to the form itself."""
    return f"triddle/forms/{form_id}"


class FileAttachmentResolver:
    """Uploads the files of one submission batch concurrently.

    All-or-nothing: when any upload fails, the ones that succeeded are
    deleted again and ``UploadError`` is raised, so no answer points at a
    half-stored batch.
    """

    def __init__(self, blob_store: S3BlobStore, max_workers: int = 4) -> None:
        self.blob_store = blob_store
        self.max_workers = max_workers

    def resolve(
        self,
        answers: list[Answer],
        files: dict[str, UploadedFile],
        folder: str,
    ) -> list[StoredBlob]:
        """Upload the file of every answer whose field ID has one.

        On success each such answer is updated in place with ``file_url``,
        ``file_public_id`` and the original filename as its value.

        Args:
            answers: Answers of the submission batch.
            files: Uploaded files keyed by field ID.
            folder: Blob store folder for this batch.

        Returns:
            The stored blobs, one per resolved answer.

        Raises:
            ValidationError: If a file is too large or of a disallowed type
                (checked before anything is uploaded).
            UploadError: If any upload fails.
        """
        targets = [(answer, files[answer.field_id]) for answer in answers if answer.field_id in files]
        if not targets:
            return []

        for _, upload in targets:
            validate_file(upload.filename, upload.size)

        stored: list[tuple[Answer, UploadedFile, StoredBlob]] = []
        failures: list[tuple[str, Exception]] = []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(targets))) as pool:
            futures = {
                pool.submit(
                    self.blob_store.upload,
                    upload.data,
                    upload.filename,
                    folder,
                    upload.content_type,
                ): (answer, upload)
                for answer, upload in targets
            }
            for future in as_completed(futures):
                answer, upload = futures[future]
                try:
                    stored.append((answer, upload, future.result()))
                except Exception as e:
                    logger.warning("File upload failed", field_id=answer.field_id, error=str(e))
                    failures.append((answer.field_id, e))

        if failures:
            orphaned = [blob.public_id for _, _, blob in stored]
            if orphaned:
                undeleted = self.blob_store.delete_many(orphaned)
                if undeleted:
                    logger.warning("Could not remove uploads of failed batch", public_ids=undeleted)
            field_id, cause = failures[0]
            raise UploadError(f"Error uploading file {field_id}: {cause}", field_id=field_id)

        for answer, upload, blob in stored:
            answer.file_url = blob.url
            answer.file_public_id = blob.public_id
            answer.value = upload.filename or DEFAULT_FILE_VALUE

        logger.info("Attachments resolved", folder=folder, count=len(stored))
        return [blob for _, _, blob in stored]
