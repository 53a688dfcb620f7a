"""
Module: stock_kernel.models.order
Responsibility: ORM persistence for orders and their items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/order_lifecycle.py only.

Invariants enforced:
    ORDER_LIFECYCLE -- ``status`` is CHECK-constrained to the known set and
        only changes along allowed edges (ORM listener in db/immutability.py).
    Orders are never deleted.  OrderItem rows are immutable once written
        (ORM listener + PostgreSQL trigger) and unique per (order, product).

Failure modes:
    - ImmutabilityViolationError on an Order delete, an off-edge status write,
      or any OrderItem UPDATE/DELETE.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.order_lifecycle import OrderStatus

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OrderStatus)


class Order(TrackedBase):
    """
    A customer order held against one branch's stock.

    Contract:
        Created in PENDING by a successful reservation.  ``status`` is
        written only by OrderStateMachine.
    """

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="chk_order_status"),
        CheckConstraint("subtotal >= 0", name="chk_order_subtotal_non_negative"),
        CheckConstraint("delivery_fee >= 0", name="chk_order_delivery_fee_non_negative"),
        CheckConstraint("discount >= 0", name="chk_order_discount_non_negative"),
        CheckConstraint("total >= 0", name="chk_order_total_non_negative"),
        Index("idx_order_branch_status", "branch_id", "status"),
        Index("idx_order_user", "user_id"),
        Index("idx_order_created_at", "created_at"),
    )

    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PENDING.value,
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Label only: payment happens on pickup, outside the kernel
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.product_id",
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def __repr__(self) -> str:
        return f"<Order {self.order_number} {self.status}>"


class OrderItem(Base):
    """One product line of an order, priced at reservation time."""

    __tablename__ = "order_items"

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_item_product"),
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="chk_order_item_price_non_negative"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    order: Mapped[Order] = relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def __repr__(self) -> str:
        return f"<OrderItem {self.product_id} x{self.quantity}>"
