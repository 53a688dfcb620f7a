"""
Module: stock_kernel.selectors.catalog_selector
Responsibility: Resolve branch and product references (id or slug) against
    the externally owned catalog tables.
Architecture position: Kernel > Selectors.

A reference is a ``UUID`` (looked up by id) or a ``str`` (looked up by slug;
a slug miss falls back to the id when the string parses as a UUID).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import EntityRef
from stock_kernel.exceptions import BranchNotFoundError, ProductNotFoundError
from stock_kernel.models.catalog import Branch, Product
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class BranchInfo:
    id: UUID
    slug: str
    name: str


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    slug: str
    name: str
    price: Decimal


def _as_uuid(ref: str) -> UUID | None:
    try:
        return UUID(ref)
    except ValueError:
        return None


class CatalogSelector(BaseSelector[Product]):
    """Reference lookups for products and branches."""

    def _find(self, model, ref: EntityRef):
        if isinstance(ref, UUID):
            return self.session.get(model, ref)
        row = self.session.execute(
            select(model).where(model.slug == ref)
        ).scalar_one_or_none()
        if row is None and (as_id := _as_uuid(ref)) is not None:
            row = self.session.get(model, as_id)
        return row

    def find_product(self, ref: EntityRef) -> ProductInfo | None:
        product = self._find(Product, ref)
        if product is None:
            return None
        return ProductInfo(
            id=product.id,
            slug=product.slug,
            name=product.name,
            price=product.price,
        )

    def find_branch(self, ref: EntityRef) -> BranchInfo | None:
        branch = self._find(Branch, ref)
        if branch is None:
            return None
        return BranchInfo(id=branch.id, slug=branch.slug, name=branch.name)

    def get_product(self, ref: EntityRef) -> ProductInfo:
        product = self.find_product(ref)
        if product is None:
            raise ProductNotFoundError(str(ref))
        return product

    def get_branch(self, ref: EntityRef) -> BranchInfo:
        branch = self.find_branch(ref)
        if branch is None:
            raise BranchNotFoundError(str(ref))
        return branch

    def products_by_id(self, product_ids: Iterable[UUID]) -> dict[UUID, ProductInfo]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.session.execute(select(Product).where(Product.id.in_(ids))).scalars()
        return {
            row.id: ProductInfo(id=row.id, slug=row.slug, name=row.name, price=row.price)
            for row in rows
        }
