"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock movement log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/movement_rules.py only.

Invariants enforced:
    APPEND_ONLY_MOVEMENTS -- no UPDATE, no DELETE (ORM listeners in
        db/immutability.py and, on PostgreSQL, db/triggers.py).
    MOVEMENT_REPLAY -- ``seq`` is strictly monotonic (allocated from the
        ``stock_movement`` sequence counter) and gives the replay order.

Failure modes:
    - ImmutabilityViolationError on any UPDATE or DELETE through the ORM.
    - IntegrityError on a non-positive quantity or duplicate seq.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.movement_rules import StockMovementType

_TYPE_VALUES = ", ".join(f"'{t.value}'" for t in StockMovementType)


class StockMovement(Base):
    """
    One immutable change to on-hand stock.

    A TRANSFERENCIA is a single row with both branches set; every other
    type sets exactly one of ``from_branch_id`` / ``to_branch_id``.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_movement_quantity_positive"),
        CheckConstraint(
            f"movement_type IN ({_TYPE_VALUES})", name="chk_movement_type"
        ),
        Index("idx_movement_product_seq", "product_id", "seq"),
        Index("idx_movement_from_branch", "from_branch_id"),
        Index("idx_movement_to_branch", "to_branch_id"),
        Index("idx_movement_created_at", "created_at"),
        Index("idx_movement_reference", "reference_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    from_branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    to_branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    # Order id for VENTA rows written by a pickup/delivery, else caller-supplied
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def type(self) -> StockMovementType:
        return StockMovementType(self.movement_type)

    def __repr__(self) -> str:
        return f"<StockMovement #{self.seq} {self.movement_type} x{self.quantity}>"
