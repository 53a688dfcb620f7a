"""
InventoryLedgerStore -- current quantity and reserved per (product, branch).

Responsibility:
    The single source of truth for "available" (quantity - reserved).
    Locks, lazily creates and adjusts InventoryRecord rows.  It does not
    decide WHY a counter changes; callers do.

Architecture position:
    Kernel > Services -- imperative shell.  The two counter writers are
    restricted: ``adjust_quantity`` is called only from movement_log.py and
    ``adjust_reserved`` only from reservation_manager.py (checked by
    tests/architecture/test_single_writer.py against
    ``stock_kernel.invariants.COUNTER_WRITERS``).

Invariants enforced:
    RESERVED_WITHIN_QUANTITY -- no adjustment may leave quantity < 0,
        reserved < 0, or reserved > quantity.  Checked here before the
        write and again by the table's CHECK constraints.

Failure modes:
    - InsufficientStockError: a decrease beyond available, or a reservation
      beyond quantity.
    - InvalidReservationError: reserved would become negative.
    - ConflictError: stale version on flush, or a lazy-creation race that
      does not resolve.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.dtos import InventoryRecordView
from stock_kernel.domain.movement_rules import MAX_QUANTITY
from stock_kernel.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidReservationError,
    ValidationError,
)
from stock_kernel.invariants import KernelInvariant
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


def _require_delta(delta: object) -> int:
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta", f"must be a non-zero integer, got {delta!r}")
    return delta


class InventoryLedgerStore(BaseService[InventoryRecord]):
    """
    Row-level access to the stock counters.

    Contract:
        Every write locks the row first (``SELECT ... FOR UPDATE`` with
        ``populate_existing``) and flushes immediately, so the in-session
        object always mirrors the locked database row.
    """

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_record(self, product_id: UUID, branch_id: UUID) -> InventoryRecord | None:
        return self.session.execute(
            select(InventoryRecord).where(
                InventoryRecord.product_id == product_id,
                InventoryRecord.branch_id == branch_id,
            )
        ).scalar_one_or_none()

    def lock_record(self, product_id: UUID, branch_id: UUID) -> InventoryRecord | None:
        """Lock and return the (product, branch) row, or None if it does not exist."""
        return self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.product_id == product_id,
                InventoryRecord.branch_id == branch_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_available(self, product_id: UUID, branch_id: UUID | None = None) -> int:
        """
        ``quantity - reserved`` for one branch (0 if no row), or summed
        across all branches when ``branch_id`` is None.
        """
        stmt = select(
            func.coalesce(func.sum(InventoryRecord.quantity - InventoryRecord.reserved), 0)
        ).where(InventoryRecord.product_id == product_id)
        if branch_id is not None:
            stmt = stmt.where(InventoryRecord.branch_id == branch_id)
        return int(self.session.execute(stmt).scalar_one())

    def record_view(self, product_id: UUID, branch_id: UUID) -> InventoryRecordView | None:
        record = self.get_record(product_id, branch_id)
        return InventoryRecordView.from_model(record) if record else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def adjust_quantity(self, product_id: UUID, branch_id: UUID, delta: int) -> InventoryRecord:
        """
        Change on-hand quantity by ``delta``.

        Creates the row for a positive delta if it does not exist yet.
        A decrease may consume only what is available: the result must stay
        at or above ``reserved``.
        """
        _require_delta(delta)
        record = self.lock_record(product_id, branch_id)

        current = record.quantity if record is not None else 0
        if current + delta > MAX_QUANTITY:
            raise ValidationError(
                "quantity",
                f"on-hand quantity would exceed {MAX_QUANTITY} "
                f"(currently {current}, delta {delta})",
            )

        if record is None:
            if delta < 0:
                raise InsufficientStockError(
                    product_id=str(product_id),
                    branch_id=str(branch_id),
                    requested=-delta,
                    available=0,
                )
            record = self._create_record(product_id, branch_id)

        new_quantity = record.quantity + delta
        if new_quantity < record.reserved:
            logger.info(
                "quantity_adjustment_rejected",
                extra={
                    "invariant": KernelInvariant.RESERVED_WITHIN_QUANTITY.value,
                    "product_id": str(product_id),
                    "branch_id": str(branch_id),
                    "delta": delta,
                    "quantity": record.quantity,
                    "reserved": record.reserved,
                },
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                branch_id=str(branch_id),
                requested=-delta,
                available=record.available,
            )

        record.quantity = new_quantity
        record.updated_at = self.clock.now()
        self._flush(record)

        logger.debug(
            "inventory_quantity_adjusted",
            extra={
                "product_id": str(product_id),
                "branch_id": str(branch_id),
                "delta": delta,
                "quantity": record.quantity,
                "reserved": record.reserved,
            },
        )
        return record

    def adjust_reserved(self, product_id: UUID, branch_id: UUID, delta: int) -> InventoryRecord:
        """
        Change the held quantity by ``delta``.

        Never creates a row: nothing can be held where nothing is on hand.
        """
        _require_delta(delta)
        record = self.lock_record(product_id, branch_id)

        if record is None:
            if delta > 0:
                raise InsufficientStockError(
                    product_id=str(product_id),
                    branch_id=str(branch_id),
                    requested=delta,
                    available=0,
                )
            raise InvalidReservationError(
                product_id=str(product_id),
                branch_id=str(branch_id),
                reserved=0,
                delta=delta,
            )

        new_reserved = record.reserved + delta
        if new_reserved > record.quantity:
            raise InsufficientStockError(
                product_id=str(product_id),
                branch_id=str(branch_id),
                requested=delta,
                available=record.available,
            )
        if new_reserved < 0:
            raise InvalidReservationError(
                product_id=str(product_id),
                branch_id=str(branch_id),
                reserved=record.reserved,
                delta=delta,
            )

        record.reserved = new_reserved
        record.updated_at = self.clock.now()
        self._flush(record)

        logger.debug(
            "inventory_reserved_adjusted",
            extra={
                "product_id": str(product_id),
                "branch_id": str(branch_id),
                "delta": delta,
                "quantity": record.quantity,
                "reserved": record.reserved,
            },
        )
        return record

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _create_record(self, product_id: UUID, branch_id: UUID) -> InventoryRecord:
        """
        Insert an empty row inside a savepoint.

        If a concurrent transaction inserted the same pair first, the unique
        constraint fails the INSERT; the savepoint is rolled back and the
        winner's row is locked instead.
        """
        now = self.clock.now()
        savepoint = self.session.begin_nested()
        try:
            record = InventoryRecord(
                product_id=product_id,
                branch_id=branch_id,
                quantity=0,
                reserved=0,
                created_at=now,
                updated_at=now,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "inventory_record_created",
                extra={"product_id": str(product_id), "branch_id": str(branch_id)},
            )
            return record
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "inventory_record_race_retry",
                extra={"product_id": str(product_id), "branch_id": str(branch_id)},
            )

        record = self.lock_record(product_id, branch_id)
        if record is None:
            raise ConflictError(
                entity_type="InventoryRecord",
                entity_id=f"{product_id}/{branch_id}",
                reason="row creation raced and the winning row is not visible",
            )
        return record

    def _flush(self, record: InventoryRecord) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise ConflictError(
                entity_type="InventoryRecord",
                entity_id=str(record.id),
                reason="version changed since the row was read",
            ) from exc
