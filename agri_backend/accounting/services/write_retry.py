# accounting/services/write_retry.py

"""
======================================================
PATH: accounting/services/write_retry.py
======================================================
RETRY OUTERMOST ACCOUNTING WRITES

Two writers racing on the same idempotency key (or the same reversal, or
the same auto-created period) leave the loser with either:
- a unique violation (IntegrityError), or
- a serialization failure (OperationalError, SQLSTATE 40001) under
  SERIALIZABLE isolation

Inside the losing transaction the winner is invisible (snapshot taken
before the winner committed), so the loser cannot recover in place. The
whole unit of work is rolled back and re-run in a fresh transaction,
where the idempotent lookup finds the winner and returns it.

Only the OUTERMOST call retries: when the caller already holds a
transaction the error propagates so that caller's own retry handles it.
"""

from __future__ import annotations

import functools
import logging

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
UNIQUE_VIOLATION = "23505"


def _sqlstate(exc) -> str | None:
    cause = exc.__cause__
    return getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)


def is_write_collision(exc) -> bool:
    state = _sqlstate(exc)
    if isinstance(exc, OperationalError):
        return state in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED)
    if isinstance(exc, IntegrityError):
        if state is not None:
            return state == UNIQUE_VIOLATION
        # SQLite carries no SQLSTATE.
        return "UNIQUE constraint failed" in str(exc)
    return False


def retry_on_collision(func):
    """
    Re-run func in a fresh transaction when it loses a write race.

    Stack above @transaction.atomic so each attempt gets its own transaction.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if transaction.get_connection().in_atomic_block:
            return func(*args, **kwargs)

        attempts = max(getattr(settings, "ACCOUNTING_WRITE_ATTEMPTS", 3), 1)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except (IntegrityError, OperationalError) as exc:
                if attempt == attempts or not is_write_collision(exc):
                    raise
                logger.warning(
                    "Accounting write collided; retrying in a fresh transaction",
                    extra={"operation": func.__qualname__, "attempt": attempt, "error": str(exc)},
                )

    return wrapper
