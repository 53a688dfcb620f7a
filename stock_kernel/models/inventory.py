"""
Module: stock_kernel.models.inventory
Responsibility: ORM persistence for the per-(product, branch) stock counters.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    RESERVED_WITHIN_QUANTITY -- 0 <= reserved <= quantity (CHECK constraints
        here, service checks in InventoryLedgerStore).
    One row per (product, branch) (UNIQUE constraint).

Failure modes:
    - IntegrityError if a CHECK or the UNIQUE constraint is violated.
    - StaleDataError if the row's version moved under a write (translated
      to ConflictError by the services).
"""

from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class InventoryRecord(TrackedBase):
    """
    Current on-hand and held quantity of one product at one branch.

    Contract:
        ``quantity`` is written only by StockMovementLog (through
        InventoryLedgerStore.adjust_quantity); ``reserved`` only by
        ReservationManager (through adjust_reserved).

    Guarantees:
        - ``available`` = quantity - reserved is never negative.
        - ``version`` increments on every UPDATE; a write carrying a stale
          version fails instead of overwriting.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("product_id", "branch_id", name="uq_inventory_product_branch"),
        CheckConstraint("quantity >= 0", name="chk_inventory_quantity_non_negative"),
        CheckConstraint("reserved >= 0", name="chk_inventory_reserved_non_negative"),
        CheckConstraint("reserved <= quantity", name="chk_inventory_reserved_within_quantity"),
        Index("idx_inventory_branch", "branch_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    reserved: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def available(self) -> int:
        return self.quantity - self.reserved

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord product={self.product_id} branch={self.branch_id} "
            f"quantity={self.quantity} reserved={self.reserved}>"
        )
