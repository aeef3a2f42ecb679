"""Fixed-window rate limiting for public endpoints, backed by DynamoDB counters."""

import os
import time
from typing import NamedTuple

import boto3
import structlog
from botocore.exceptions import ClientError

from triddle.utils.exceptions import RateLimitError

logger = structlog.get_logger()

DEFAULT_REQUESTS_PER_MINUTE = 10
DEFAULT_REQUESTS_PER_HOUR = 100


class RateLimitResult(NamedTuple):
    """Result of a rate limit check."""

    allowed: bool
    requests_remaining: int
    retry_after: int | None  # Seconds until limit resets


class _Window(NamedTuple):
    name: str
    seconds: int
    limit: int


def _get_table():
    """Get the DynamoDB table holding the counters."""
    return boto3.resource("dynamodb").Table(os.environ.get("TABLE_NAME", "triddle-dev"))


def _increment(table, pk: str, identifier: str, expires_at: int) -> int:
    """Atomically bump a window counter and return its new value."""
    response = table.update_item(
        Key={"PK": pk, "SK": identifier},
        UpdateExpression="SET #count = if_not_exists(#count, :zero) + :inc, #ttl = :ttl",
        ExpressionAttributeNames={"#count": "count", "#ttl": "ttl"},
        ExpressionAttributeValues={":zero": 0, ":inc": 1, ":ttl": expires_at},
        ReturnValues="ALL_NEW",
    )
    return int(response["Attributes"]["count"])


def check_rate_limit(
    identifier: str,
    action: str,
    requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
    requests_per_hour: int = DEFAULT_REQUESTS_PER_HOUR,
) -> RateLimitResult:
    """Count a request against per-minute and per-hour windows.

    Counter items expire through the table TTL two windows after they were
    last written. A store outage fails open: the request is allowed and the
    error logged.

    Args:
        identifier: Unique identifier (usually the client IP).
        action: Action being rate limited (e.g., "response_submit").
        requests_per_minute: Max requests allowed per minute.
        requests_per_hour: Max requests allowed per hour.

    Returns:
        RateLimitResult with allowed status and remaining requests.
    """
    table = _get_table()
    now = int(time.time())
    remaining = []

    windows = (
        _Window("MIN", 60, requests_per_minute),
        _Window("HOUR", 3600, requests_per_hour),
    )

    try:
        for window in windows:
            bucket = now // window.seconds
            count = _increment(
                table,
                f"RATELIMIT#{action}#{window.name}#{bucket}",
                identifier,
                now + 2 * window.seconds,
            )
            if count > window.limit:
                logger.warning(
                    "Rate limit exceeded",
                    identifier=identifier[:20],
                    action=action,
                    window=window.name,
                    count=count,
                    limit=window.limit,
                )
                return RateLimitResult(
                    allowed=False,
                    requests_remaining=0,
                    retry_after=window.seconds - (now % window.seconds),
                )
            remaining.append(window.limit - count)

    except ClientError as e:
        logger.error(
            "Rate limiter DynamoDB error",
            error=str(e),
            identifier=identifier[:20],
            action=action,
        )
        return RateLimitResult(allowed=True, requests_remaining=-1, retry_after=None)

    return RateLimitResult(allowed=True, requests_remaining=min(remaining), retry_after=None)


def enforce_rate_limit(identifier: str, action: str, **limits: int) -> None:
    """Raise RateLimitError when ``identifier`` is over its limit for ``action``."""
    result = check_rate_limit(identifier, action, **limits)
    if not result.allowed:
        raise RateLimitError(retry_after=result.retry_after or 60)
