"""
Module: stock_kernel.selectors.order_selector
Responsibility: Single-order and paginated order reads.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import OrderView, Page
from stock_kernel.domain.order_lifecycle import OrderStatus
from stock_kernel.exceptions import OrderNotFoundError
from stock_kernel.models.order import Order
from stock_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[Order]):
    """Read-only access to orders and their items."""

    def get_order(self, order_id: UUID, user_id: UUID | None = None) -> OrderView:
        """
        Raises:
            OrderNotFoundError: no such order, or ``user_id`` is given and
                the order belongs to someone else.
        """
        order = self.session.get(Order, order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise OrderNotFoundError(str(order_id))
        return OrderView.from_model(order)

    def list_orders(
        self,
        branch_id: UUID | None = None,
        status: OrderStatus | None = None,
        user_id: UUID | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[OrderView]:
        """Filtered page of orders, newest first."""
        conditions = []
        if branch_id is not None:
            conditions.append(Order.branch_id == branch_id)
        if status is not None:
            conditions.append(Order.status == status.value)
        if user_id is not None:
            conditions.append(Order.user_id == user_id)

        total = self.session.execute(
            select(func.count()).select_from(Order).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.order_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars()
        return Page(
            items=tuple(OrderView.from_model(o) for o in rows),
            page=page,
            page_size=page_size,
            total=total,
        )
