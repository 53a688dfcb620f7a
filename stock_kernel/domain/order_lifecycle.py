"""
Order lifecycle -- pure transition table for orders.

Responsibility:
    Declares the order statuses, the allowed edges between them and the
    inventory effect each edge carries.  The OrderStateMachine service
    consults this table; nothing here touches the database.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    ORDER_LIFECYCLE -- status changes follow only the edges in
    ALLOWED_TRANSITIONS.  Terminal statuses have no outgoing edges.

    IN_DELIVERY has an outgoing edge (to DELIVERED) but no incoming one.
    It is kept as-is: orders can only enter it through data written
    outside the kernel.
"""

from enum import Enum

from stock_kernel.exceptions import (
    InvalidTransitionError,
    OrderAlreadyTerminalError,
    ValidationError,
)


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    IN_DELIVERY = "IN_DELIVERY"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderEffect(str, Enum):
    """Inventory side effect carried by a transition."""

    NONE = "none"
    # Order creation: hold every item.
    RESERVE = "reserve"
    # Cancellation: release every outstanding hold.
    RELEASE = "release"
    # Pickup / delivery: release the hold and append one VENTA per item.
    COMMIT_SALE = "commit_sale"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.IN_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.PICKED_UP: frozenset(),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.PICKED_UP, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# Statuses in which the order's items are held in InventoryRecord.reserved.
STOCK_HOLDING_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.IN_DELIVERY,
    }
)

INITIAL_STATUS = OrderStatus.PENDING


def parse_status(value: "OrderStatus | str") -> OrderStatus:
    """Coerce a status string; unknown values raise ValidationError."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).upper())
    except ValueError:
        raise ValidationError("status", f"unknown order status {value!r}") from None


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def effect_of(current: OrderStatus, target: OrderStatus) -> OrderEffect:
    """Inventory effect of an allowed edge."""
    if target is OrderStatus.CANCELLED:
        return OrderEffect.RELEASE
    if target in (OrderStatus.PICKED_UP, OrderStatus.DELIVERED):
        return OrderEffect.COMMIT_SALE
    return OrderEffect.NONE


def check_transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
) -> OrderEffect:
    """
    Validate ``current -> target`` and return its effect.

    Raises:
        OrderAlreadyTerminalError: ``current`` is terminal.
        InvalidTransitionError: the edge is not allowed.
    """
    if is_terminal(current):
        raise OrderAlreadyTerminalError(order_id, current.value, target.value)
    if not can_transition(current, target):
        raise InvalidTransitionError(order_id, current.value, target.value)
    return effect_of(current, target)
