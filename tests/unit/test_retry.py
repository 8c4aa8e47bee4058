"""
Unit tests for outbound retry helpers.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import smtplib

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.core.retry import (
    backoff_delay,
    is_transient_s3_error,
    is_transient_smtp_error,
    retry_with_backoff,
)


def client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "PutObject",
    )


class TestTransientClassification:
    def test_s3_throttling_and_server_errors_are_transient(self):
        assert is_transient_s3_error(client_error("SlowDown", 503))
        assert is_transient_s3_error(client_error("Whatever", 500))
        assert is_transient_s3_error(EndpointConnectionError(endpoint_url="http://s3"))

    def test_s3_access_denied_is_final(self):
        assert not is_transient_s3_error(client_error("AccessDenied", 403))

    def test_smtp_classification(self):
        assert is_transient_smtp_error(smtplib.SMTPServerDisconnected())
        assert is_transient_smtp_error(smtplib.SMTPResponseException(421, b"try later"))
        assert not is_transient_smtp_error(smtplib.SMTPResponseException(550, b"no such user"))
        assert not is_transient_smtp_error(smtplib.SMTPAuthenticationError(535, b"bad login"))


class TestBackoffDelay:
    def test_doubles_and_caps(self):
        assert backoff_delay(0, 0.5, 10.0, jitter=False) == 0.5
        assert backoff_delay(2, 0.5, 10.0, jitter=False) == 2.0
        assert backoff_delay(10, 0.5, 10.0, jitter=False) == 10.0

    def test_jitter_stays_within_twenty_percent(self):
        for _ in range(20):
            assert 0.8 <= backoff_delay(0, 1.0, 10.0, jitter=True) <= 1.2


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        """
        Arrange: Call failing once with a throttling error
        Act: Invoke through the decorator
        Assert: Second attempt result is returned
        """
        calls = []

        @retry_with_backoff(base_delay=0, jitter=False, exceptions=(ClientError,), should_retry=is_transient_s3_error)
        async def put():
            calls.append(1)
            if len(calls) == 1:
                raise client_error("SlowDown", 503)
            return "stored"

        assert await put() == "stored"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        calls = []

        @retry_with_backoff(base_delay=0, jitter=False, exceptions=(ClientError,), should_retry=is_transient_s3_error)
        async def put():
            calls.append(1)
            raise client_error("AccessDenied", 403)

        with pytest.raises(ClientError):
            await put()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        @retry_with_backoff(max_retries=2, base_delay=0, jitter=False, exceptions=(OSError,))
        async def deliver():
            calls.append(1)
            raise ConnectionResetError("reset")

        with pytest.raises(ConnectionResetError):
            await deliver()
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_unlisted_exception_propagates_immediately(self):
        calls = []

        @retry_with_backoff(base_delay=0, exceptions=(OSError,))
        async def deliver():
            calls.append(1)
            raise ValueError("bad message")

        with pytest.raises(ValueError):
            await deliver()
        assert len(calls) == 1
