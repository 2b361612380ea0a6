"""
Gap-tolerant monotonic counters for audit event ordering.

Each named sequence is a single row locked with ``SELECT ... FOR UPDATE``
while it is incremented, so concurrent writers queue on the row instead of
racing on ``max(seq) + 1``.  A rolled-back transaction gives its value back.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from privileges_kernel.logging_config import get_logger
from privileges_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates sequence values inside the caller's transaction. Never commits."""

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _counter_query(self, name: str):
        return select(SequenceCounter).where(SequenceCounter.name == name)

    def _locked(self, name: str) -> SequenceCounter | None:
        stmt = self._counter_query(name).with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter:
        # Two first writers can both miss the row; the loser's insert fails
        # inside its savepoint and it falls back to locking the winner's row.
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=name, current_value=0)
                self._session.add(counter)
                self._session.flush()
            return counter
        except IntegrityError:
            logger.debug("sequence_create_conflict", extra={"sequence_name": name})
            counter = self._locked(name)
            if counter is None:
                raise
            return counter

    def next_value(self, name: str) -> int:
        """Increment ``name`` (creating it at zero on first use) and return the new value."""
        counter = self._locked(name) or self._create(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._session.execute(self._counter_query(name)).scalar_one_or_none()
        return None if counter is None else counter.current_value
