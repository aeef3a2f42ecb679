"""Authentication context helpers."""

import os
from dataclasses import dataclass
from typing import Any

import jwt
import structlog

from triddle.utils.exceptions import ForbiddenError, UnauthorizedError

logger = structlog.get_logger()

ADMIN_ROLE = "ADMIN"


@dataclass
class AuthContext:
    """Authentication context extracted from API Gateway event.

    Contains user identity and role claim.
    """

    user_id: str
    role: str = "USER"
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role.upper() == ADMIN_ROLE

    def can_manage(self, owner_id: str) -> bool:
        """Check if user may read or mutate a resource owned by ``owner_id``.

        Args:
            owner_id: Owner of the resource.

        Returns:
            True for the owner and for admins.
        """
        return self.is_admin or self.user_id == owner_id


def decode_token(token: str) -> dict[str, Any]:
    """Verify a bearer token and return its claims.

    Args:
        token: Encoded JWT.

    Returns:
        Token claims.

    Raises:
        UnauthorizedError: If the token is missing, expired or invalid.
    """
    secret = os.environ.get("JWT_SECRET")
    algorithm = os.environ.get("JWT_ALGORITHM", "HS256")

    if not secret:
        logger.error("JWT_SECRET not configured")
        raise UnauthorizedError()

    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        raise UnauthorizedError("Invalid token")


def extract_bearer_token(headers: dict | None) -> str | None:
    """Extract a bearer token from request headers (case-insensitive)."""
    headers = headers or {}
    auth_header = headers.get("Authorization") or headers.get("authorization")

    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_auth_context(event: dict[str, Any]) -> AuthContext:
    """Extract authentication context from API Gateway event.

    Args:
        event: API Gateway event dict.

    Returns:
        AuthContext with user information.

    Raises:
        UnauthorizedError: If authentication context cannot be extracted.
    """
    request_context = event.get("requestContext", {}) or {}
    authorizer = request_context.get("authorizer", {}) or {}

    # For Lambda authorizer responses, context is nested differently
    # depending on payload format version
    context = authorizer
    if "lambda" in authorizer:
        context = authorizer["lambda"]

    user_id = context.get("userId") or context.get("user_id") or context.get("id")

    if not user_id:
        logger.debug("No user ID in auth context")
        raise UnauthorizedError()

    return AuthContext(
        user_id=user_id,
        role=context.get("role") or "USER",
        email=context.get("email"),
    )


def get_optional_auth_context(event: dict[str, Any]) -> AuthContext | None:
    """Identify the caller on a public route, tolerating anonymous visitors.

    A missing or invalid token yields ``None`` rather than an error.
    """
    token = extract_bearer_token(event.get("headers"))
    if not token:
        return None

    try:
        claims = decode_token(token)
    except UnauthorizedError:
        return None

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        return None
    return AuthContext(user_id=str(user_id), role=claims.get("role") or "USER", email=claims.get("email"))


def require_owner_or_admin(auth: AuthContext, owner_id: str, action: str, resource_type: str = "Form") -> None:
    """Ensure user owns the resource or is an admin.

    Args:
        auth: Authentication context.
        owner_id: Owner of the resource.
        action: Action being attempted, used in the error message.
        resource_type: Resource type for error details.

    Raises:
        ForbiddenError: If user is neither owner nor admin.
    """
    if not auth.can_manage(owner_id):
        logger.warning(
            "Resource access denied",
            user_id=auth.user_id,
            owner_id=owner_id,
            action=action,
        )
        raise ForbiddenError(
            message=f"User {auth.user_id} is not authorized to {action}",
            resource_type=resource_type,
            action=action,
        )


def get_caller(event: dict[str, Any]) -> AuthContext | None:
    """Caller identity on a route that also serves anonymous visitors.

    Prefers the authorizer context and falls back to verifying a bearer
    token carried by the request itself.
    """
    try:
        return get_auth_context(event)
    except UnauthorizedError:
        return get_optional_auth_context(event)
