"""
Backoff for SQLite write contention.

The engine, the CLI and the health server can share one database file, so
a writer may find it locked for a moment. Only lock and busy errors are
retried; a missing table or a version conflict fails on the first attempt.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from alicerce.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

LOCK_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def is_lock_contention(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and any(
        message in str(exc).lower() for message in LOCK_MESSAGES
    )


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "sqlite_locked_retrying",
        call=getattr(retry_state.fn, "__qualname__", None),
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a store write while the database is locked

    Args:
        max_attempts: Attempts including the first one
        min_wait_ms: First backoff
        max_wait_ms: Backoff ceiling

    The last lock error is re-raised once attempts run out.
    """
    return retry(
        retry=retry_if_exception(is_lock_contention),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(min=min_wait_ms / 1000.0, max=max_wait_ms / 1000.0),
        before_sleep=_log_retry,
        reraise=True,
    )
