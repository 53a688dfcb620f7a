"""
BaseService -- abstract base for the kernel's write services.

Responsibility:
    Common constructor and session-handling contract.  Concrete services
    receive a SQLAlchemy ``Session`` and use ``session.flush()`` (and
    savepoints) -- never ``session.commit()`` or ``session.rollback()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    ALL_OR_NOTHING -- services flush within the caller's transaction.
        FulfillmentService owns commit/rollback, so a multi-step operation
        (reserve every item, create the order, number it) lands atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel write services.

    Guarantees:
        - The service never commits or rolls back the session; it may open
          and close savepoints (``session.begin_nested()``).

    Non-goals:
        - Read-only listings belong in ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session inside the caller's transaction.
            clock: Time source for row timestamps (defaults to SystemClock).
        """
        self.session = session
        self.clock = clock or SystemClock()
