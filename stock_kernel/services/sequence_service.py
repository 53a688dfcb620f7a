"""
SequenceService -- gap-free counters for order numbers and movement ``seq``.

Each named sequence is one row in ``sequence_counters``.  Allocation locks
that row with ``SELECT ... FOR UPDATE`` and increments it inside the
caller's transaction, so:

    - concurrent allocations serialize on the row;
    - a rolled-back transaction gives its value back;
    - max()+1 over the target table is never used.

Lock order: the counter row is taken last in every transaction, after the
order row and the inventory rows, and only one counter per allocation.

The service never commits; the caller owns the transaction.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:

    ORDER_NUMBER = "order_number"
    STOCK_MOVEMENT = "stock_movement"

    KNOWN_SEQUENCES = (ORDER_NUMBER, STOCK_MOVEMENT)

    def __init__(self, session: Session):
        self._session = session

    def _find(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter:
        """
        Insert a counter at 0 inside a savepoint.

        If another transaction created it first, the unique constraint fails
        the insert and the winner's row is locked instead.
        """
        try:
            with self._session.begin_nested():
                counter = SequenceCounter(name=name, current_value=0)
                self._session.add(counter)
            return counter
        except IntegrityError:
            logger.debug("sequence_counter_created_concurrently", extra={"sequence_name": name})
            counter = self._find(name, lock=True)
            if counter is None:
                raise
            return counter

    def next_value(self, sequence_name: str) -> int:
        """Lock, increment and return the counter; 1 on first use."""
        counter = self._find(sequence_name, lock=True) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._find(sequence_name, lock=False)
        return counter.current_value if counter else None

    def initialize_sequences(self) -> None:
        """Create the known counters at 0 so first allocations never race on creation."""
        for name in self.KNOWN_SEQUENCES:
            if self._find(name, lock=False) is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()
