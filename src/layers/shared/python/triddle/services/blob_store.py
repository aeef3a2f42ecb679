"""S3-backed blob store for files attached to form responses."""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from triddle.utils.exceptions import UploadError, ValidationError

logger = structlog.get_logger()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_FILE_TYPES = re.compile(
    r"^.*\.(jpg|jpeg|png|gif|bmp|tif|webp|svg|mp4|avi|mov|mkv|webm|pdf|doc|docx|xls|xlsx|ppt|pptx)$",
    re.IGNORECASE,
)


@dataclass
class StoredBlob:
    """Result of a successful upload."""

    url: str
    public_id: str
    bytes: int
    format: str


def validate_file(filename: str, size: int) -> None:
    """Check an upload against the size and file type limits.

    Raises:
        ValidationError: If the file is too large or of a disallowed type.
    """
    if size > MAX_FILE_SIZE:
        raise ValidationError(f"Max file size is {MAX_FILE_SIZE // (1024 * 1024)}MB")
    if not filename or not ALLOWED_FILE_TYPES.match(filename):
        raise ValidationError("Invalid file type")


def unique_file_name(filename: str, now: datetime | None = None) -> str:
    """Stamp a filename with the upload time: ``report_20240131093000.pdf``."""
    now = now or datetime.now(timezone.utc)
    base, ext = os.path.splitext(os.path.basename(filename))
    return f"{base}_{now.strftime('%Y%m%d%H%M%S')}{ext}"


class S3BlobStore:
    """Uploads and deletes response attachments in an S3 bucket."""

    def __init__(self, bucket: str | None = None, s3_client: Any = None) -> None:
        """Initialize blob store.

        Args:
            bucket: Bucket name. Defaults to UPLOADS_BUCKET env var.
            s3_client: Optional boto3 S3 client. Created lazily when omitted.
        """
        self.bucket = bucket or os.environ.get("UPLOADS_BUCKET", "")
        self._s3 = s3_client

    @property
    def s3(self):
        """Get S3 client (lazy initialization)."""
        if self._s3 is None:
            self._s3 = boto3.client(
                "s3",
                config=Config(
                    connect_timeout=3,
                    read_timeout=10,
                    retries={"max_attempts": 2, "mode": "standard"},
                ),
            )
        return self._s3

    def object_url(self, key: str) -> str:
        """Public HTTPS URL of an object."""
        region = os.environ.get("AWS_REGION", "us-east-1")
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"

    def upload(
        self,
        data: bytes,
        filename: str,
        folder: str = "uploads",
        content_type: str | None = None,
    ) -> StoredBlob:
        """Store a file under ``folder`` with a time-stamped unique name.

        Args:
            data: File contents.
            filename: Original filename (used for the key and the format).
            folder: Key prefix.
            content_type: MIME type recorded on the object.

        Returns:
            StoredBlob describing the stored object.

        Raises:
            ValidationError: If the file fails validation.
            UploadError: If the store rejects the upload.
        """
        validate_file(filename, len(data))

        key = f"{folder}/{unique_file_name(filename)}"
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type

        try:
            self.s3.put_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed", key=key, error=str(e))
            raise UploadError(f"Failed to upload file: {e}")

        logger.info("File uploaded", key=key, size=len(data))
        return StoredBlob(
            url=self.object_url(key),
            public_id=key,
            bytes=len(data),
            format=os.path.splitext(filename)[1].lstrip(".").lower(),
        )

    def delete(self, public_id: str) -> None:
        """Delete a stored file.

        Raises:
            UploadError: If the store rejects the deletion.
        """
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=public_id)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 delete failed", key=public_id, error=str(e))
            raise UploadError(f"Failed to delete file: {e}")

    def delete_many(self, public_ids: list[str]) -> list[str]:
        """Delete several files, continuing past failures.

        Returns:
            The public IDs that could not be deleted.
        """
        failed = []
        for public_id in public_ids:
            try:
                self.delete(public_id)
            except UploadError:
                failed.append(public_id)
        return failed
