from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session

from campus_api.errors import TransientError
from campus_api.settings import get_settings

logger = logging.getLogger("campus.db_retry")

T = TypeVar("T")

RETRYABLE_ERROR_PATTERNS: tuple[str, ...] = (
    "i/o error",
    "server selection timeout",
    "connection timeout",
    "connection refused",
    "network",
    "econnrefused",
    "etimedout",
    "socket",
    "replica set",
    "topology",
    "transient",
    "server closed the connection",
)


def is_retryable_error(error: BaseException) -> bool:
    if isinstance(error, (OperationalError, DisconnectionError)):
        return True
    text = str(error).lower()
    code = str(getattr(error, "code", "") or "").lower()
    return any(pattern in text or pattern in code for pattern in RETRYABLE_ERROR_PATTERNS)


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


def retry_db_operation(
    operation: Callable[[], T],
    *,
    session: Session | None = None,
    attempts: int | None = None,
    initial_delay_ms: int | None = None,
    max_delay_ms: int | None = None,
    multiplier: float = 2,
    operation_name: str = "db_operation",
) -> T:
    """Run ``operation`` and retry it on connection-level failures.

    When ``session`` is given it is rolled back before each retry.
    Non-transient errors propagate untouched. Once every attempt has failed
    the last error is wrapped in ``TransientError`` (HTTP 503).
    """
    settings = get_settings()
    max_attempts = max(1, attempts if attempts is not None else settings.db_retry_attempts)
    delay_ms = float(initial_delay_ms if initial_delay_ms is not None else settings.db_retry_initial_delay_ms)
    cap_ms = float(max_delay_ms if max_delay_ms is not None else settings.db_retry_max_delay_ms)

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if not is_retryable_error(exc):
                raise
            last_error = exc
            if attempt >= max_attempts:
                break
            logger.warning(
                "db_operation_retry",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_ms": delay_ms,
                    "error": str(exc),
                },
            )
            if session is not None:
                session.rollback()
            _sleep(delay_ms / 1000)
            delay_ms = min(delay_ms * multiplier, cap_ms)

    logger.error(
        "db_operation_failed",
        extra={"operation": operation_name, "attempts": max_attempts, "error": str(last_error)},
    )
    raise TransientError("Database is temporarily unavailable. Please try again.") from last_error
