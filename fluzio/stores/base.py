"""Deadline handling and error mapping shared by every store.

Stores never commit. Services group store calls into a unit of work and
finish it with :func:`commit`, which refuses to commit once the caller's
deadline has passed so a timed-out operation leaves no partial state.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from ..errors import InvalidStateError, StoreTimeoutError, StoreUnavailableError
from ..models import db
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Deadline:
    """Absolute point in (monotonic) time by which a store call must finish."""

    __slots__ = ("expires_at",)

    def __init__(self, expires_at: float) -> None:
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + max(0.0, float(seconds)))

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def __repr__(self) -> str:  # pragma: no cover - helper
        return f"<Deadline remaining={self.remaining():.3f}s>"


def check_deadline(deadline: Deadline | None, operation: str) -> None:
    if deadline is not None and deadline.expired():
        raise StoreTimeoutError(
            f"Deadline exceeded before {operation}", operation=operation
        )


def _apply_statement_timeout(deadline: Deadline | None) -> None:
    if deadline is None:
        return
    bind = db.session.get_bind()
    if bind.dialect.name != "postgresql":
        return
    millis = max(1, int(deadline.remaining() * 1000))
    db.session.execute(text(f"SET LOCAL statement_timeout = {millis}"))


@contextmanager
def store_call(operation: str, deadline: Deadline | None = None) -> Iterator[None]:
    """Bound a store call by ``deadline`` and map driver errors.

    Integrity errors are left to the caller, which usually turns them into a
    domain error (duplicate application, duplicate template activation).
    """

    check_deadline(deadline, operation)
    try:
        _apply_statement_timeout(deadline)
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        db.session.rollback()
        if deadline is not None and deadline.expired():
            logger.warning("[STORE] %s timed out", operation)
            raise StoreTimeoutError(
                f"{operation} did not finish before the deadline", operation=operation
            ) from exc
        logger.exception("[STORE] %s failed", operation)
        raise StoreUnavailableError(
            f"{operation} failed: store unavailable", operation=operation
        ) from exc

    if deadline is not None and deadline.expired():
        db.session.rollback()
        logger.warning("[STORE] %s finished after the deadline; rolled back", operation)
        raise StoreTimeoutError(
            f"{operation} did not finish before the deadline", operation=operation
        )


def commit(operation: str, deadline: Deadline | None = None) -> None:
    """Commit the current unit of work, or roll it back entirely."""

    if deadline is not None and deadline.expired():
        db.session.rollback()
        logger.warning("[STORE] %s rolled back: deadline exceeded before commit", operation)
        raise StoreTimeoutError(
            f"{operation} did not finish before the deadline", operation=operation
        )

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("[STORE] %s rejected by a store constraint: %s", operation, exc.orig)
        raise InvalidStateError(
            f"{operation} violates a store constraint", operation=operation
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("[STORE] %s commit failed", operation)
        raise StoreUnavailableError(
            f"{operation} failed: store unavailable", operation=operation
        ) from exc


def rollback() -> None:
    db.session.rollback()


__all__ = ["Deadline", "check_deadline", "commit", "rollback", "store_call"]
