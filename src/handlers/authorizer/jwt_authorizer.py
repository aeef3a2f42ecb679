"""JWT Authorizer for API Gateway.

Validates HS256 bearer tokens issued by the account service and forwards the
user identity and role to downstream handlers.
"""

from typing import Any

import structlog

from triddle.utils.auth import decode_token
from triddle.utils.exceptions import UnauthorizedError

logger = structlog.get_logger()


def handler(event: dict[str, Any], context: Any) -> dict:
    """Lambda authorizer handler for API Gateway.

    Args:
        event: API Gateway authorizer event.
        context: Lambda context.

    Returns:
        IAM policy document with context.
    """
    token = _extract_token(event)
    if not token:
        logger.warning("No token provided")
        return _deny_policy(event)

    try:
        claims = decode_token(token)
    except UnauthorizedError as e:
        logger.warning("Token validation failed", reason=e.message)
        return _deny_policy(event)

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        logger.warning("Token has no user identity")
        return _deny_policy(event)

    # Authorizer context values must be strings, numbers or booleans
    auth_context = {
        "userId": str(user_id),
        "role": str(claims.get("role") or "USER"),
        "email": claims.get("email") or "",
    }

    logger.info("Authorization successful", user_id=auth_context["userId"], role=auth_context["role"])

    return _allow_policy(event, auth_context)


def _extract_token(event: dict) -> str | None:
    """Extract JWT token from event.

    Args:
        event: API Gateway event.

    Returns:
        Token string or None.
    """
    headers = event.get("headers", {}) or {}
    auth_header = headers.get("Authorization") or headers.get("authorization")

    if auth_header:
        if auth_header.startswith("Bearer "):
            return auth_header[7:]
        return auth_header

    # TOKEN authorizers pass the header value as authorizationToken
    token = event.get("authorizationToken")
    if token:
        return token[7:] if token.startswith("Bearer ") else token

    return None


def _allow_policy(event: dict, context: dict) -> dict:
    """Build an allow policy.

    Args:
        event: API Gateway event.
        context: Auth context to pass to downstream.

    Returns:
        Policy document.
    """
    method_arn = event.get("methodArn", event.get("routeArn", "*"))

    # Allow every route of the API so the cached policy covers later calls
    arn_parts = method_arn.split("/")
    resource_arn = f"{'/'.join(arn_parts[:2])}/*" if len(arn_parts) >= 2 else "*"

    return {
        "principalId": context["userId"],
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": "Allow",
                    "Resource": resource_arn,
                }
            ],
        },
        "context": context,
    }


def _deny_policy(event: dict) -> dict:
    """Build a deny policy."""
    return {
        "principalId": "unauthorized",
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": "Deny",
                    "Resource": event.get("methodArn", event.get("routeArn", "*")),
                }
            ],
        },
    }
