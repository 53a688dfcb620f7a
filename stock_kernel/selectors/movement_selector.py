"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Newest-first, paginated reads of the stock movement log.
Architecture position: Kernel > Selectors.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select

from stock_kernel.domain.dtos import Page, StockMovementView
from stock_kernel.domain.movement_rules import StockMovementType
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector[StockMovement]):
    """Read-only access to stock movements."""

    def list_movements(
        self,
        product_id: UUID | None = None,
        branch_id: UUID | None = None,
        movement_type: StockMovementType | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[StockMovementView]:
        """
        Filtered page of movements, newest (highest seq) first.

        ``branch_id`` matches either the source or the destination branch.
        """
        conditions = []
        if product_id is not None:
            conditions.append(StockMovement.product_id == product_id)
        if branch_id is not None:
            conditions.append(
                or_(
                    StockMovement.from_branch_id == branch_id,
                    StockMovement.to_branch_id == branch_id,
                )
            )
        if movement_type is not None:
            conditions.append(StockMovement.movement_type == movement_type.value)
        if created_from is not None:
            conditions.append(StockMovement.created_at >= created_from)
        if created_to is not None:
            conditions.append(StockMovement.created_at <= created_to)

        total = self.session.execute(
            select(func.count()).select_from(StockMovement).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(StockMovement)
            .where(*conditions)
            .order_by(StockMovement.seq.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
        return Page(
            items=tuple(StockMovementView.from_model(m) for m in rows),
            page=page,
            page_size=page_size,
            total=total,
        )

    def for_reference(self, reference_id: UUID) -> list[StockMovementView]:
        """Movements carrying ``reference_id`` (an order's VENTA rows), in seq order."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.reference_id == reference_id)
            .order_by(StockMovement.seq)
        ).scalars()
        return [StockMovementView.from_model(m) for m in rows]
