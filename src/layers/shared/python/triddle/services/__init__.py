"""Service classes for business logic."""

from triddle.services.analytics import field_analytics, form_analytics, response_counts, visit_analytics
from triddle.services.blob_store import S3BlobStore, StoredBlob
from triddle.services.export import ExportResult, export_responses
from triddle.services.file_attachments import FileAttachmentResolver
from triddle.services.response_merge import MergeStrategy, ResponseMergeEngine
from triddle.services.saga import Saga
from triddle.services.visit_tracker import VisitTracker

__all__ = [
    "ExportResult",
    "FileAttachmentResolver",
    "MergeStrategy",
    "ResponseMergeEngine",
    "S3BlobStore",
    "Saga",
    "StoredBlob",
    "VisitTracker",
    "export_responses",
    "field_analytics",
    "form_analytics",
    "response_counts",
    "visit_analytics",
]
