"""
DTOs -- Immutable input and result structures of the kernel.

Responsibility:
    Typed, validated inputs (Actor, ReserveItem, MovementSpec, filters) and
    result snapshots (InventoryRecordView, StockMovementView, OrderView,
    Page, LedgerDrift) that cross the service boundary.  Services never
    return ORM rows to callers.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only from the service and selector layers.

Failure modes:
    - ValidationError on malformed input, raised at construction so nothing
      downstream ever sees it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Generic, Iterable, TypeVar
from uuid import UUID

from stock_kernel.domain.movement_rules import (
    StockMovementType,
    parse_movement_type,
    validate_branches,
    validate_quantity,
)
from stock_kernel.domain.order_lifecycle import OrderStatus, parse_status
from stock_kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from stock_kernel.models.inventory import InventoryRecord
    from stock_kernel.models.order import Order, OrderItem
    from stock_kernel.models.stock_movement import StockMovement

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

EntityRef = UUID | str

T = TypeVar("T")


def lock_key(product_id: UUID, branch_id: UUID) -> tuple[str, str]:
    """Sort key giving the global inventory-row lock order."""
    return (str(product_id), str(branch_id))


def to_money(value: Any, field_name: str) -> Decimal:
    """Non-negative Decimal from int, Decimal or numeric string."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field_name, f"must be an int or Decimal, got {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(field_name, f"not a number: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(field_name, f"not a number: {value!r}")
    if amount < 0:
        raise ValidationError(field_name, f"must not be negative, got {amount}")
    return amount


def clamp_page(page: int, page_size: int) -> tuple[int, int]:
    return max(1, int(page)), min(MAX_PAGE_SIZE, max(1, int(page_size)))


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class Actor:
    """Pre-validated caller identity. The kernel does no authorization."""

    user_id: UUID | None = None
    role: str | None = None

    @property
    def log_id(self) -> str | None:
        return str(self.user_id) if self.user_id is not None else None


SYSTEM_ACTOR = Actor(user_id=None, role="system")


@dataclass(frozen=True)
class ReserveItem:
    """One requested order line: a product reference and a quantity."""

    product_ref: EntityRef
    quantity: int

    def __post_init__(self) -> None:
        validate_quantity(self.quantity)
        if not isinstance(self.product_ref, (UUID, str)) or self.product_ref == "":
            raise ValidationError("product_ref", f"invalid reference {self.product_ref!r}")


@dataclass(frozen=True)
class ItemQuantity:
    """Resolved product id and quantity, the unit the ledger works in."""

    product_id: UUID
    quantity: int


def coalesce_items(items: Iterable[ItemQuantity]) -> list[ItemQuantity]:
    """
    Merge lines for the same product and sort them by product id.

    The sorted order is the lock order of a single-branch operation.
    """
    totals: dict[UUID, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return [
        ItemQuantity(product_id=pid, quantity=qty)
        for pid, qty in sorted(totals.items(), key=lambda kv: str(kv[0]))
    ]


@dataclass(frozen=True)
class MovementSpec:
    """A validated movement request with resolved ids."""

    movement_type: StockMovementType
    quantity: int
    product_id: UUID
    from_branch_id: UUID | None = None
    to_branch_id: UUID | None = None
    reference_id: UUID | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "movement_type", parse_movement_type(self.movement_type))
        validate_quantity(self.quantity)
        validate_branches(self.movement_type, self.from_branch_id, self.to_branch_id)


@dataclass(frozen=True)
class InventoryFilter:
    product_ref: EntityRef | None = None
    branch_ref: EntityRef | None = None


@dataclass(frozen=True)
class OrderFilter:
    branch_ref: EntityRef | None = None
    status: OrderStatus | str | None = None
    user_id: UUID | None = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.status is not None:
            object.__setattr__(self, "status", parse_status(self.status))
        page, page_size = clamp_page(self.page, self.page_size)
        object.__setattr__(self, "page", page)
        object.__setattr__(self, "page_size", page_size)


@dataclass(frozen=True)
class MovementFilter:
    product_ref: EntityRef | None = None
    # Matches either side of the movement.
    branch_ref: EntityRef | None = None
    movement_type: StockMovementType | str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.movement_type is not None:
            object.__setattr__(
                self, "movement_type", parse_movement_type(self.movement_type)
            )
        if (
            self.created_from is not None
            and self.created_to is not None
            and self.created_from > self.created_to
        ):
            raise ValidationError("created_from", "must not be after created_to")
        page, page_size = clamp_page(self.page, self.page_size)
        object.__setattr__(self, "page", page)
        object.__setattr__(self, "page_size", page_size)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class InventoryRecordView:
    id: UUID
    product_id: UUID
    branch_id: UUID
    quantity: int
    reserved: int
    version: int
    updated_at: datetime | None = None

    @property
    def available(self) -> int:
        return self.quantity - self.reserved

    @classmethod
    def from_model(cls, record: InventoryRecord) -> InventoryRecordView:
        return cls(
            id=record.id,
            product_id=record.product_id,
            branch_id=record.branch_id,
            quantity=record.quantity,
            reserved=record.reserved,
            version=record.version,
            updated_at=record.updated_at,
        )


@dataclass(frozen=True)
class StockMovementView:
    id: UUID
    seq: int
    movement_type: StockMovementType
    quantity: int
    product_id: UUID
    from_branch_id: UUID | None
    to_branch_id: UUID | None
    reference_id: UUID | None
    note: str | None
    created_at: datetime
    created_by: UUID | None

    @classmethod
    def from_model(cls, movement: StockMovement) -> StockMovementView:
        return cls(
            id=movement.id,
            seq=movement.seq,
            movement_type=StockMovementType(movement.movement_type),
            quantity=movement.quantity,
            product_id=movement.product_id,
            from_branch_id=movement.from_branch_id,
            to_branch_id=movement.to_branch_id,
            reference_id=movement.reference_id,
            note=movement.note,
            created_at=movement.created_at,
            created_by=movement.created_by,
        )


@dataclass(frozen=True)
class OrderItemView:
    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_model(cls, item: OrderItem) -> OrderItemView:
        return cls(
            id=item.id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )


@dataclass(frozen=True)
class OrderView:
    id: UUID
    order_number: str
    status: OrderStatus
    branch_id: UUID
    user_id: UUID | None
    payment_method: str | None
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    items: tuple[OrderItemView, ...]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, order: Order) -> OrderView:
        return cls(
            id=order.id,
            order_number=order.order_number,
            status=OrderStatus(order.status),
            branch_id=order.branch_id,
            user_id=order.user_id,
            payment_method=order.payment_method,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            discount=order.discount,
            total=order.total,
            items=tuple(
                OrderItemView.from_model(item)
                for item in sorted(order.items, key=lambda i: str(i.product_id))
            ),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a newest-first listing."""

    items: tuple[T, ...]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.total else 0


@dataclass(frozen=True)
class LedgerDrift:
    """
    A (product, branch) pair whose stored counters disagree with history.

    ``replayed_quantity`` folds the movement log in seq order;
    ``held_reserved`` sums the items of orders in a stock-holding status.
    """

    product_id: UUID
    branch_id: UUID
    stored_quantity: int
    replayed_quantity: int
    stored_reserved: int
    held_reserved: int
    notes: tuple[str, ...] = field(default=())

    @property
    def quantity_drift(self) -> int:
        return self.stored_quantity - self.replayed_quantity

    @property
    def reserved_drift(self) -> int:
        return self.stored_reserved - self.held_reserved
