"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: Read-only inventory listings and ledger verification.
Architecture position: Kernel > Selectors.

verify() recomputes both counters of every (product, branch) pair from
history and reports the pairs that disagree:

    quantity  <- fold of stock_movements in seq order      (MOVEMENT_REPLAY)
    reserved  <- sum of order_items of stock-holding orders (RESERVATION_ACCOUNTING)

An empty result means the ledger is consistent.
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import func, or_, select

from stock_kernel.domain.dtos import InventoryRecordView, LedgerDrift, lock_key
from stock_kernel.domain.movement_rules import StockMovementType, signed_delta
from stock_kernel.domain.order_lifecycle import STOCK_HOLDING_STATUSES
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.order import Order, OrderItem
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.base import BaseSelector

Pair = tuple[UUID, UUID]


class InventorySelector(BaseSelector[InventoryRecord]):
    """Read-only access to the stock counters."""

    def list_records(
        self,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> list[InventoryRecordView]:
        stmt = select(InventoryRecord)
        if product_id is not None:
            stmt = stmt.where(InventoryRecord.product_id == product_id)
        if branch_id is not None:
            stmt = stmt.where(InventoryRecord.branch_id == branch_id)
        records = self.session.execute(stmt).scalars().all()
        views = [InventoryRecordView.from_model(r) for r in records]
        return sorted(views, key=lambda v: lock_key(v.product_id, v.branch_id))

    def verify(
        self,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
    ) -> list[LedgerDrift]:
        stored = {
            (v.product_id, v.branch_id): v
            for v in self.list_records(product_id, branch_id)
        }
        replayed, notes = self._replay(product_id, branch_id)
        held = self._held(product_id, branch_id)

        drifts = []
        for pair in sorted(set(stored) | set(replayed) | set(held), key=lambda p: lock_key(*p)):
            view = stored.get(pair)
            drift = LedgerDrift(
                product_id=pair[0],
                branch_id=pair[1],
                stored_quantity=view.quantity if view else 0,
                replayed_quantity=replayed.get(pair, 0),
                stored_reserved=view.reserved if view else 0,
                held_reserved=held.get(pair, 0),
                notes=tuple(notes.get(pair, ())),
            )
            if drift.quantity_drift or drift.reserved_drift or drift.notes:
                drifts.append(drift)
        return drifts

    def _replay(
        self,
        product_id: UUID | None,
        branch_id: UUID | None,
    ) -> tuple[dict[Pair, int], dict[Pair, list[str]]]:
        stmt = select(StockMovement).order_by(StockMovement.seq)
        if product_id is not None:
            stmt = stmt.where(StockMovement.product_id == product_id)
        if branch_id is not None:
            stmt = stmt.where(
                or_(
                    StockMovement.from_branch_id == branch_id,
                    StockMovement.to_branch_id == branch_id,
                )
            )

        totals: dict[Pair, int] = defaultdict(int)
        notes: dict[Pair, list[str]] = defaultdict(list)
        for movement in self.session.execute(stmt).scalars():
            movement_type = StockMovementType(movement.movement_type)
            for touched in (movement.from_branch_id, movement.to_branch_id):
                if touched is None or (branch_id is not None and touched != branch_id):
                    continue
                pair = (movement.product_id, touched)
                totals[pair] += signed_delta(
                    movement_type,
                    movement.quantity,
                    movement.from_branch_id,
                    movement.to_branch_id,
                    touched,
                )
                if totals[pair] < 0:
                    notes[pair].append(f"quantity negative after seq {movement.seq}")
        return dict(totals), dict(notes)

    def _held(self, product_id: UUID | None, branch_id: UUID | None) -> dict[Pair, int]:
        stmt = (
            select(
                OrderItem.product_id,
                Order.branch_id,
                func.sum(OrderItem.quantity),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status.in_([s.value for s in STOCK_HOLDING_STATUSES]))
            .group_by(OrderItem.product_id, Order.branch_id)
        )
        if product_id is not None:
            stmt = stmt.where(OrderItem.product_id == product_id)
        if branch_id is not None:
            stmt = stmt.where(Order.branch_id == branch_id)
        return {
            (pid, bid): int(total)
            for pid, bid, total in self.session.execute(stmt).all()
        }
