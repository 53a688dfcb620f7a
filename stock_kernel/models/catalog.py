"""
Module: stock_kernel.models.catalog
Responsibility: ORM persistence for the reference data the kernel reads:
    branches (points of sale / stock locations) and products.
Architecture position: Kernel > Models.  May import from db/base.py only.

The external catalog owns these rows.  The kernel reads ``id``, ``slug``,
``name`` and ``Product.price`` and never writes them outside fixtures and
seed scripts.
"""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class Branch(TrackedBase):
    """A physical location holding stock."""

    __tablename__ = "branches"

    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Branch {self.slug}>"


class Product(TrackedBase):
    """A sellable product with its current unit price."""

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_product_price_non_negative"),
    )

    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.slug} @ {self.price}>"
