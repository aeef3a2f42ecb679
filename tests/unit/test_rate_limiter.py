"""Tests for the rate limiter utility."""

import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from triddle.utils.exceptions import RateLimitError
from triddle.utils.rate_limiter import check_rate_limit, enforce_rate_limit
from triddle.utils.responses import error_from_exception


class TestRateLimiter:
    """Tests for check_rate_limit and enforce_rate_limit."""

    def test_rate_limit_allows_under_limit(self, dynamodb_table):
        """Requests under the limit should be allowed."""
        result = check_rate_limit(
            identifier="test-ip",
            action="test",
            requests_per_minute=5,
        )

        assert result.allowed is True
        assert result.requests_remaining >= 0
        assert result.retry_after is None

    def test_rate_limit_blocks_over_minute(self, dynamodb_table):
        """Exceeding the per-minute limit should block the request."""
        for _ in range(5):
            result = check_rate_limit(
                identifier="test-ip",
                action="test",
                requests_per_minute=5,
            )
            assert result.allowed is True

        # The 6th request should be blocked
        result = check_rate_limit(
            identifier="test-ip",
            action="test",
            requests_per_minute=5,
        )

        assert result.allowed is False
        assert result.requests_remaining == 0
        assert result.retry_after is not None
        assert result.retry_after > 0

    def test_rate_limit_blocks_over_hour(self, dynamodb_table):
        """Exceeding the per-hour limit should block the request."""
        # Set per-minute high so we only hit the hour limit
        for _ in range(3):
            result = check_rate_limit(
                identifier="test-ip",
                action="test",
                requests_per_minute=100,
                requests_per_hour=3,
            )
            assert result.allowed is True

        result = check_rate_limit(
            identifier="test-ip",
            action="test",
            requests_per_minute=100,
            requests_per_hour=3,
        )

        assert result.allowed is False
        assert result.retry_after > 0

    def test_rate_limit_different_identifiers(self, dynamodb_table):
        """Different identifiers should have independent rate limits."""
        for _ in range(5):
            check_rate_limit(identifier="ip-1", action="test", requests_per_minute=5)

        result = check_rate_limit(identifier="ip-2", action="test", requests_per_minute=5)

        assert result.allowed is True

    def test_rate_limit_fails_open(self):
        """A store outage lets the request through."""
        table = MagicMock()
        table.update_item.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "down"}}, "UpdateItem"
        )

        with patch("triddle.utils.rate_limiter._get_table", return_value=table):
            result = check_rate_limit(identifier="test-ip", action="test")

        assert result.allowed is True
        assert result.requests_remaining == -1

    def test_enforce_raises_when_limited(self, dynamodb_table):
        """enforce_rate_limit raises a 429 with Retry-After."""
        enforce_rate_limit("test-ip", "submit", requests_per_minute=1)

        with pytest.raises(RateLimitError) as exc_info:
            enforce_rate_limit("test-ip", "submit", requests_per_minute=1)

        response = error_from_exception(exc_info.value)
        assert response["statusCode"] == 429
        assert int(response["headers"]["Retry-After"]) > 0
        body = json.loads(response["body"])
        assert body["success"] is False
        assert body["error_code"] == "RATE_LIMITED"
