"""
Backoff helpers for outbound calls (SMTP delivery, S3 writes).

Only transient failures are retried. A failure is transient when its type
is listed in ``exceptions`` and, if given, ``should_retry(exc)`` agrees.
Permanent errors such as a rejected SMTP login or an S3 ``AccessDenied``
surface on the first attempt.
"""

import asyncio
import functools
import logging
import random
import smtplib
from typing import Callable, Optional, Tuple, Type

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# S3 error codes worth a second attempt; every other ClientError is final.
TRANSIENT_S3_CODES = frozenset({
    "InternalError",
    "RequestTimeout",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
})


def is_transient_s3_error(exc: Exception) -> bool:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return error.get("Code") in TRANSIENT_S3_CODES or status >= 500
    return isinstance(exc, BotoCoreError)


def is_transient_smtp_error(exc: Exception) -> bool:
    if isinstance(exc, (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused)):
        return False
    if isinstance(exc, smtplib.SMTPResponseException):
        # 4xx replies are temporary by definition, 5xx are not
        return 400 <= exc.smtp_code < 500
    return isinstance(exc, (smtplib.SMTPException, OSError))


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: bool) -> float:
    """Delay before retry number ``attempt + 1``, doubling each time."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter:
        delay = max(0.0, delay + random.uniform(-0.2 * delay, 0.2 * delay))
    return delay


def retry_with_backoff(
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
):
    """
    Decorator retrying an async callable with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        jitter: Add +/-20% randomness to each delay
        exceptions: Exception types considered for a retry
        should_retry: Optional predicate narrowing ``exceptions`` further

    Example:
        @retry_with_backoff(exceptions=(ClientError, BotoCoreError), should_retry=is_transient_s3_error)
        async def put(key, data):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    retryable = should_retry is None or should_retry(exc)
                    if not retryable or attempt >= max_retries:
                        logger.warning(
                            "Outbound call gave up",
                            extra={
                                "operation": func.__name__,
                                "attempts": attempt + 1,
                                "error_type": type(exc).__name__,
                                "retryable": retryable,
                            },
                        )
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, jitter)
                    logger.info(
                        "Outbound call failed, retrying",
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt + 1,
                            "error_type": type(exc).__name__,
                            "delay_seconds": round(delay, 2),
                        },
                    )
                    attempt += 1
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
