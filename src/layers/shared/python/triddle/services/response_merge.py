"""Response merge engine.

Turns a batch of answers submitted under a visit into a stored response:
either merged into the visit's open (incomplete) response or written as a
new one. At most one incomplete response exists per (form, visit):

* the visit item holds an ``openResponseId`` claim, set with a conditional
  write once the new response is stored;
* merges are compare-and-swap writes on the response version;
* a lost race is retried from a fresh read, up to ``MAX_MERGE_ATTEMPTS``.
"""

import os
from datetime import datetime
from enum import Enum

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from triddle.models.base import utc_now
from triddle.models.form import Form
from triddle.models.response import Answer, Response, ResponseMetadata
from triddle.models.visit import Visit
from triddle.repositories.response import ResponseRepository
from triddle.repositories.visit import VisitRepository
from triddle.services.blob_store import S3BlobStore
from triddle.services.file_attachments import FileAttachmentResolver, response_upload_folder
from triddle.services.saga import Saga
from triddle.services.visit_tracker import VisitTracker
from triddle.utils.exceptions import ConflictError, FormNotAcceptingResponsesError
from triddle.utils.request import RequestContext, UploadedFile

logger = structlog.get_logger()

MAX_MERGE_ATTEMPTS = 5


class MergeStrategy(str, Enum):
    """How answers of a later batch combine with those already stored."""

    APPEND = "append"
    REPLACE = "replace"


def strategy_from_env() -> MergeStrategy:
    """Merge strategy from ANSWER_MERGE_STRATEGY, defaulting to append."""
    raw = os.environ.get("ANSWER_MERGE_STRATEGY", MergeStrategy.APPEND.value)
    try:
        return MergeStrategy(raw.strip().lower())
    except ValueError:
        logger.warning("Unknown answer merge strategy, using append", value=raw)
        return MergeStrategy.APPEND


def merge_answers(existing: list[Answer], incoming: list[Answer], strategy: MergeStrategy) -> list[Answer]:
    """Combine stored and incoming answers.

    ``append`` keeps every entry, duplicates included. ``replace`` keeps one
    answer per field: the latest value, at the position the field was first
    answered.
    """
    if strategy == MergeStrategy.REPLACE:
        by_field: dict[str, Answer] = {}
        for answer in [*existing, *incoming]:
            by_field[answer.field_id] = answer
        return list(by_field.values())
    return [*existing, *incoming]


def complete_response(response: Response, now: datetime) -> None:
    """Mark a response complete and record how long it took."""
    response.metadata.is_complete = True
    response.metadata.completed_at = now
    response.metadata.time_spent = (now - response.metadata.started_at).total_seconds()


class ResponseMergeEngine:
    """Applies answer batches to responses."""

    def __init__(
        self,
        visits: VisitRepository,
        responses: ResponseRepository,
        tracker: VisitTracker | None = None,
        attachments: FileAttachmentResolver | None = None,
        strategy: MergeStrategy | str | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            visits: Visit repository.
            responses: Response repository.
            tracker: Visit tracker. Built on ``visits`` when omitted.
            attachments: File resolver for uploads. Built on the default
                S3 bucket when omitted.
            strategy: Merge strategy. Read from the environment when omitted.
        """
        self.visits = visits
        self.responses = responses
        self.tracker = tracker or VisitTracker(visits)
        self.attachments = attachments or FileAttachmentResolver(S3BlobStore())
        self.strategy = MergeStrategy(strategy) if strategy else strategy_from_env()

    def submit_answers(
        self,
        form: Form,
        visit_id: str | None,
        answers: list[Answer],
        is_complete: bool,
        request_context: RequestContext,
        respondent_id: str | None = None,
        files: dict[str, UploadedFile] | None = None,
    ) -> tuple[Response, Visit]:
        """Store a batch of answers for a visit of a published form.

        Args:
            form: The form being answered.
            visit_id: Client-supplied visit ID, if any.
            answers: The batch of answers.
            is_complete: Whether this batch completes the response.
            request_context: Client metadata.
            respondent_id: Authenticated submitter, if any.
            files: Uploaded files keyed by field ID.

        Returns:
            Tuple of (stored response, visit).

        Raises:
            FormNotAcceptingResponsesError: If the form is not published.
            UploadError: If a file upload fails.
            ConflictError: If concurrent writers kept winning the race.
        """
        if not form.is_published:
            raise FormNotAcceptingResponsesError(form.id, form.status)

        # Files first: a rejected or failed upload must not leave a visit behind
        stored = []
        if files:
            stored = self.attachments.resolve(answers, files, response_upload_folder(form.id))

        with Saga("submit_response", form_id=form.id, visit_id=visit_id) as saga:
            for blob in stored:
                saga.on_failure(f"delete {blob.public_id}", self.attachments.blob_store.delete, blob.public_id)
            visit = self.tracker.get_or_create_visit(form.id, visit_id, request_context)
            response = self._upsert(form, visit, answers, is_complete, request_context, respondent_id)

        if response.is_complete:
            self.tracker.mark_completed(visit, response.id)

        return response, visit

    def _upsert(
        self,
        form: Form,
        visit: Visit,
        answers: list[Answer],
        is_complete: bool,
        request_context: RequestContext,
        respondent_id: str | None,
    ) -> Response:
        for attempt in range(1, MAX_MERGE_ATTEMPTS + 1):
            if attempt > 1:
                visit = self.visits.get_by_visit_id(form.id, visit.visit_id) or visit

            open_id = visit.open_response_id
            if open_id:
                existing = self.responses.get_for_form(form.id, open_id)
                if existing and not existing.is_complete:
                    try:
                        return self._merge_into(existing, answers, is_complete, respondent_id)
                    except ConflictError:
                        logger.info("Response changed during merge, retrying", response_id=open_id, attempt=attempt)
                        continue

            response = self._new_response(form, visit, answers, is_complete, request_context, respondent_id)
            self.responses.create_response(response)

            if response.is_complete:
                # Completed responses never hold the open claim
                return response

            try:
                self.visits.claim_open_response(form.id, visit.visit_id, response.id, expected=open_id)
            except ConflictError:
                logger.info("Lost open response race, retrying", visit_id=visit.visit_id, attempt=attempt)
                self._discard(response)
                continue
            except (ClientError, BotoCoreError):
                self._discard(response)
                raise

            visit.open_response_id = response.id
            visit.response_id = response.id
            return response

        logger.error("Response merge retries exhausted", form_id=form.id, visit_id=visit.visit_id)
        raise ConflictError("Response was modified concurrently, please retry", conflict_type="response_merge")

    def _merge_into(
        self,
        response: Response,
        answers: list[Answer],
        is_complete: bool,
        respondent_id: str | None,
    ) -> Response:
        now = utc_now()
        response.answers = merge_answers(response.answers, answers, self.strategy)
        response.metadata.updated_at = now
        if respondent_id and not response.respondent_id:
            response.respondent_id = respondent_id
        if is_complete:
            complete_response(response, now)
        self.responses.update_response(response)
        logger.info(
            "Answers merged",
            response_id=response.id,
            answer_count=len(response.answers),
            is_complete=response.is_complete,
        )
        return response

    def _new_response(
        self,
        form: Form,
        visit: Visit,
        answers: list[Answer],
        is_complete: bool,
        request_context: RequestContext,
        respondent_id: str | None,
    ) -> Response:
        now = utc_now()
        response = Response(
            form_id=form.id,
            visit_id=visit.visit_id,
            answers=list(answers),
            respondent_id=respondent_id,
            metadata=ResponseMetadata(
                visit_id=visit.visit_id,
                started_at=now,
                submitted_at=now,
                user_agent=request_context.user_agent,
                ip_address=request_context.ip_address,
                referrer=request_context.referrer,
            ),
        )
        if is_complete:
            complete_response(response, now)
        return response

    def _discard(self, response: Response) -> None:
        """Remove a response created by a request that lost the claim race."""
        try:
            self.responses.delete_response(response.form_id, response.id)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Failed to discard duplicate response", response_id=response.id, error=str(e))
