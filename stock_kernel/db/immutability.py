"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|-------------------------------------------------------------
StockMovement   | ALWAYS immutable: no UPDATE, no DELETE
OrderItem       | ALWAYS immutable: no UPDATE, no DELETE
Order           | Never deleted; ``status`` only changes along allowed edges

Layer 2 is db/triggers.py (PostgreSQL only), which rejects raw-SQL and bulk
UPDATE/DELETE on stock_movements and order_items.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The listeners are mapper events, so bulk ``session.execute(update(...))``
statements bypass them; on PostgreSQL the triggers catch those.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.invariants import KernelInvariant
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_GUARDED_INVARIANT = {
    "StockMovement": KernelInvariant.APPEND_ONLY_MOVEMENTS,
    "OrderItem": KernelInvariant.RESERVATION_ACCOUNTING,
    "Order": KernelInvariant.ORDER_LIFECYCLE,
}


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": _GUARDED_INVARIANT[entity_type].value,
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "db_operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# StockMovement
# =============================================================================


def _check_stock_movement_update(mapper, connection, target):
    _block("StockMovement", target, "UPDATE", "Stock movements are append-only")


def _check_stock_movement_delete(mapper, connection, target):
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


# =============================================================================
# OrderItem
# =============================================================================


def _check_order_item_update(mapper, connection, target):
    _block("OrderItem", target, "UPDATE", "Order items are immutable once created")


def _check_order_item_delete(mapper, connection, target):
    _block("OrderItem", target, "DELETE", "Order items cannot be deleted")


# =============================================================================
# Order
# =============================================================================


def _check_order_update(mapper, connection, target):
    """
    Allow only allowed-edge status changes.

    Other columns (``updated_at``) may change freely; the totals and the
    identity columns are frozen at creation.
    """
    from stock_kernel.domain.order_lifecycle import OrderStatus, can_transition

    for frozen in (
        "order_number",
        "branch_id",
        "user_id",
        "subtotal",
        "delivery_fee",
        "discount",
        "total",
    ):
        if get_history(target, frozen).deleted:
            _block("Order", target, "UPDATE", f"Order.{frozen} is immutable")

    history = get_history(target, "status")
    if not history.deleted or not history.added:
        return

    old = OrderStatus(history.deleted[0])
    new = OrderStatus(history.added[0])
    if old is new:
        return
    if not can_transition(old, new):
        _block(
            "Order",
            target,
            "UPDATE",
            f"status cannot move from {old.value} to {new.value}",
        )


def _check_order_delete(mapper, connection, target):
    _block("Order", target, "DELETE", "Orders are never deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from stock_kernel.models.order import Order, OrderItem
    from stock_kernel.models.stock_movement import StockMovement

    return [
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (OrderItem, "before_update", _check_order_item_update),
        (OrderItem, "before_delete", _check_order_item_delete),
        (Order, "before_update", _check_order_update),
        (Order, "before_delete", _check_order_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after all models are imported but before any database operations
    begin.  Calling it twice does not register anything twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: only for tests that need to write forbidden rows on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
