"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Allocates the human-readable LPO numbers and the permanent asset tags.
    Uses a counter table with row-level locking (``SELECT ... FOR UPDATE``)
    so concurrent allocations never hand out the same value.

Architecture position:
    Kernel > Services.  Called by the orders module (LPO numbers) and the
    asset registrar (asset tags).

Invariants enforced:
    - Monotonic, unique values per sequence name.  The aggregate
      max-plus-one pattern is never used; the locked counter row is the
      sole source of truth.
    - Transactional: the increment is visible only after the caller's
      transaction commits; a rollback returns the value.

Failure modes:
    - Concurrent first use of a sequence name is absorbed by
      ``INSERT ... ON CONFLICT DO NOTHING``; PostgreSQL and SQLite only.
"""

from uuid import uuid4

from sqlalchemy import BigInteger, String, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Mapped, Session, mapped_column

from lpo_kernel.db.base import Base
from lpo_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence, holding its last issued value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = SequenceService(session)
        number = seq.format_lpo_number("LPO", 2024)   # "LPO-2024-00001"
    """

    LPO_NUMBER = "lpo_number"
    ASSET_TAG = "asset_tag"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for ``sequence_name``.
            - The counter row stays locked until the transaction completes.
        """
        self._ensure_counter(sequence_name)
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def _ensure_counter(self, sequence_name: str) -> None:
        # INSERT ... ON CONFLICT DO NOTHING: concurrent first use cannot fail.
        dialect = self._session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        self._session.execute(
            insert(SequenceCounter)
            .values(id=uuid4(), name=sequence_name, current_value=0)
            .on_conflict_do_nothing(index_elements=["name"])
        )

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    # Yearly sequences: numbering restarts at 1 every calendar year.

    def format_lpo_number(self, prefix: str, year: int) -> str:
        value = self.next_value(f"{self.LPO_NUMBER}:{year}")
        return f"{prefix}-{year}-{value:05d}"

    def format_asset_tag(self, prefix: str, year: int) -> str:
        value = self.next_value(f"{self.ASSET_TAG}:{year}")
        return f"{prefix}-{year}-{value:06d}"
