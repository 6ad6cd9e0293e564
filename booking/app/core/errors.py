from __future__ import annotations

import logging
from typing import Any, Sequence

logger = logging.getLogger(__name__)

__all__ = ["InvalidBookingRequest", "PersistenceError", "handle_db_error"]


class InvalidBookingRequest(ValueError):
    """Validation fault raised before any availability check.

    ``code`` is a stable identifier (``invalid_date``, ``unknown_service``...)
    callers map to user-facing text.
    """

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(code)
        self.code = code
        self.message = message or code

    def __str__(self) -> str:
        return self.code


class PersistenceError(RuntimeError):
    """Infrastructure fault: the appointment store timed out or failed.

    ``committed`` lists the records a recurring series persisted before the
    fault; it is empty for single operations, which never write partially.
    """

    def __init__(self, context: str, cause: BaseException | None = None, committed: Sequence[Any] = ()) -> None:
        super().__init__(f"persistence failure during {context}: {cause!r}" if cause else f"persistence failure during {context}")
        self.context = context
        self.cause = cause
        self.committed = list(committed)

    def with_committed(self, committed: Sequence[Any]) -> "PersistenceError":
        err = PersistenceError(self.context, self.cause, committed)
        err.__cause__ = self.cause
        return err


def handle_db_error(error: BaseException, context: str = "database operation") -> PersistenceError:
    """Log a storage failure and wrap it into a PersistenceError."""
    logger.error("Database error in %s: %s", context, error)
    err = PersistenceError(context, error)
    err.__cause__ = error
    return err
