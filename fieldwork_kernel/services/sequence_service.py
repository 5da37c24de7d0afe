"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for document numbering, one
    counter per organization, kind and year.
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) to guarantee uniqueness and ordering under
    concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by DocumentService.  The event outbox does not use it: its seq
    is a database identity, so no global row is locked per transition.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  Counting existing documents and adding one is
      FORBIDDEN; it hands out duplicates under concurrency.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from fieldwork_kernel.db.base import Base
from fieldwork_kernel.domain.documents import DocumentKind
from fieldwork_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "quote:<organization_id>:2026"
    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def document_sequence_name(kind: DocumentKind, organization_id: UUID, on: date) -> str:
        """Numbers restart each calendar year, separately per organization."""
        return f"{DocumentKind(kind).value}:{organization_id}:{on.year}"

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it and
        returns the new value.  The increment is only committed when the
        caller's transaction commits.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the same row
            # concurrently; the savepoint keeps the caller's work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
