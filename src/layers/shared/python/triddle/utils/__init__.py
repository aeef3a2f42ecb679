"""Utility functions and helpers."""

from triddle.utils.auth import AuthContext, get_auth_context, get_optional_auth_context
from triddle.utils.exceptions import (
    ConflictError,
    ForbiddenError,
    FormNotAcceptingResponsesError,
    NotFoundError,
    TriddleError,
    UnauthorizedError,
    UploadError,
    ValidationError,
)
from triddle.utils.responses import created, error, error_from_exception, not_found, success

__all__ = [
    # Response helpers
    "success",
    "created",
    "error",
    "error_from_exception",
    "not_found",
    # Auth
    "get_auth_context",
    "get_optional_auth_context",
    "AuthContext",
    # Exceptions
    "TriddleError",
    "NotFoundError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "FormNotAcceptingResponsesError",
    "ConflictError",
    "UploadError",
]
