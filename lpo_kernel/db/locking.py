"""
Row locking and version checks.

Responsibility:
    Helpers shared by every module service that mutates a versioned row:
    bounded ``SELECT ... FOR UPDATE``, the caller-supplied version check,
    and translation of SQLAlchemy's stale-version failure into
    ``ConflictError``.

Architecture position:
    Kernel > DB.  May import from db/base.py and kernel exceptions.

Invariants enforced:
    - Row lock waits are bounded.  On PostgreSQL ``SET LOCAL lock_timeout``
      applies to the current transaction only; SQLite uses the driver's
      busy timeout.  Either way the failure surfaces as ``LockTimeoutError``.
    - A stale ``expected_version`` fails before any mutation.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import Select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lpo_kernel.exceptions import ConflictError, LockTimeoutError
from lpo_kernel.logging_config import get_logger

logger = get_logger("db.locking")

_PG_LOCK_NOT_AVAILABLE = "55P03"


def _is_lock_timeout(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode == _PG_LOCK_NOT_AVAILABLE:
        return True
    message = str(exc.orig).lower()
    return "database is locked" in message or "lock timeout" in message


def lock_row(
    session: Session,
    stmt: Select,
    lock_key: str,
    timeout_seconds: float,
) -> Any:
    """Execute ``stmt`` with ``FOR UPDATE`` and return the single entity or None.

    Raises:
        LockTimeoutError: the row lock was not granted within ``timeout_seconds``.
    """
    if session.get_bind().dialect.name == "postgresql":
        millis = max(1, int(timeout_seconds * 1000))
        session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))
    try:
        return session.execute(
            stmt.with_for_update().execution_options(populate_existing=True)
        ).scalar_one_or_none()
    except OperationalError as exc:
        if _is_lock_timeout(exc):
            logger.warning(
                "row_lock_timeout",
                extra={"lock_key": lock_key, "timeout_seconds": timeout_seconds},
            )
            raise LockTimeoutError(lock_key, timeout_seconds) from exc
        raise


def check_version(entity_type: str, entity_id: Any, actual: int, expected: int | None) -> None:
    """Raise ``ConflictError`` when the caller read an older version of the row."""
    if expected is not None and expected != actual:
        logger.warning(
            "stale_version_rejected",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "expected_version": expected,
                "actual_version": actual,
            },
        )
        raise ConflictError(
            entity_type, entity_id, expected_version=expected, actual_version=actual
        )


@contextmanager
def conflict_on_stale(entity_type: str, entity_id: Any) -> Generator[None, None, None]:
    """Translate a lost compare-and-swap on flush/commit into ``ConflictError``."""
    try:
        yield
    except StaleDataError as exc:
        logger.warning(
            "concurrent_update_conflict",
            extra={"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        raise ConflictError(entity_type, entity_id) from exc
