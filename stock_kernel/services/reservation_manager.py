"""
ReservationManager -- all-or-nothing holds across the items of one order.

Responsibility:
    Holds, releases and converts into sales the per-product reservations of
    an order.  This module is the ONLY caller of
    InventoryLedgerStore.adjust_reserved.

Architecture position:
    Kernel > Services -- imperative shell.  Called by OrderStateMachine.

Invariants enforced:
    RESERVATION_ACCOUNTING -- while an order is in a stock-holding status,
        its item quantities are exactly what it holds in ``reserved``.
    ALL_OR_NOTHING -- a reservation either holds every item or nothing.

Lock order:
    Lines are coalesced per product and sorted by product id; rows are
    locked in that order.  commit_sale_for_order locks every row before
    appending any VENTA, so the movement counter is always locked last.

Failure modes:
    - InsufficientStockError naming the first product (in lock order) that
      cannot be held.  Every hold made by the same call is undone first.
    - Release underflow is NOT an error: it is clamped and logged.
"""

from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import Actor, ItemQuantity, MovementSpec, coalesce_items
from stock_kernel.domain.movement_rules import StockMovementType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.invariants import KernelInvariant
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_ledger import InventoryLedgerStore
from stock_kernel.services.movement_log import StockMovementLog

logger = get_logger("services.reservation_manager")


class ReservationManager(BaseService[InventoryRecord]):
    """
    Writer of ``reserved``.

    Guarantees:
        - reserve_for_order leaves either all lines held or none.
        - release never drives ``reserved`` below zero.
    """

    def __init__(
        self,
        session: Session,
        ledger: InventoryLedgerStore,
        movements: StockMovementLog,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger
        self._movements = movements

    def reserve_for_order(
        self,
        branch_id: UUID,
        items: Iterable[ItemQuantity],
    ) -> list[ItemQuantity]:
        """
        Hold every line at ``branch_id``.

        Returns:
            The coalesced lines that were held, in lock order.

        Raises:
            InsufficientStockError: first line whose available quantity is
                short.  Nothing remains held.
        """
        lines = coalesce_items(items)
        savepoint = self.session.begin_nested()
        try:
            for line in lines:
                record = self._ledger.lock_record(line.product_id, branch_id)
                available = record.available if record is not None else 0
                if available < line.quantity:
                    raise InsufficientStockError(
                        product_id=str(line.product_id),
                        branch_id=str(branch_id),
                        requested=line.quantity,
                        available=available,
                    )
                self._ledger.adjust_reserved(line.product_id, branch_id, line.quantity)
        except Exception as exc:
            savepoint.rollback()
            logger.info(
                "reservation_rolled_back",
                extra={
                    "invariant": KernelInvariant.ALL_OR_NOTHING.value,
                    "branch_id": str(branch_id),
                    "line_count": len(lines),
                    "reason": type(exc).__name__,
                    "failed_product_id": getattr(exc, "product_id", None),
                },
            )
            raise
        savepoint.commit()

        logger.info(
            "reservation_held",
            extra={
                "branch_id": str(branch_id),
                "lines": [
                    {"product_id": str(line.product_id), "quantity": line.quantity}
                    for line in lines
                ],
            },
        )
        return lines

    def release_for_order(self, branch_id: UUID, items: Iterable[ItemQuantity]) -> None:
        """Give back every held line, clamping at zero."""
        lines = coalesce_items(items)
        for line in lines:
            self._ledger.lock_record(line.product_id, branch_id)
        for line in lines:
            self._release_line(branch_id, line)
        logger.info(
            "reservation_released",
            extra={"branch_id": str(branch_id), "line_count": len(lines)},
        )

    def commit_sale_for_order(
        self,
        branch_id: UUID,
        items: Iterable[ItemQuantity],
        reference_id: UUID,
        actor: Actor | None = None,
    ) -> None:
        """
        Turn the order's holds into sales: per line, release the hold and
        append a VENTA for the same quantity, all in one savepoint.
        """
        lines = coalesce_items(items)
        with self.session.begin_nested():
            for line in lines:
                self._ledger.lock_record(line.product_id, branch_id)
            for line in lines:
                self._release_line(branch_id, line)
                self._movements.record(
                    MovementSpec(
                        movement_type=StockMovementType.VENTA,
                        quantity=line.quantity,
                        product_id=line.product_id,
                        from_branch_id=branch_id,
                        reference_id=reference_id,
                    ),
                    actor,
                )

        logger.info(
            "sale_committed",
            extra={
                "branch_id": str(branch_id),
                "reference_id": str(reference_id),
                "line_count": len(lines),
            },
        )

    def _release_line(self, branch_id: UUID, line: ItemQuantity) -> None:
        record = self._ledger.lock_record(line.product_id, branch_id)
        held = record.reserved if record is not None else 0
        amount = min(line.quantity, held)
        if amount < line.quantity:
            logger.warning(
                "reservation_release_underflow",
                extra={
                    "invariant": KernelInvariant.RESERVATION_ACCOUNTING.value,
                    "product_id": str(line.product_id),
                    "branch_id": str(branch_id),
                    "requested": line.quantity,
                    "held": held,
                },
            )
        if amount > 0:
            self._ledger.adjust_reserved(line.product_id, branch_id, -amount)
