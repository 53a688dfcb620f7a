"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger store,
the reservation manager, the movement log, the order state machine and the
database constraints. No setting may override them.

This module declares them explicitly. Enforcement is distributed across
InventoryLedgerStore, ReservationManager, StockMovementLog, OrderStateMachine,
db/immutability.py and db/triggers.py.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    RESERVED_WITHIN_QUANTITY = "reserved_within_quantity"
    """0 <= reserved <= quantity for every inventory record. Enforced by
    InventoryLedgerStore before flush and by DB check constraints."""

    MOVEMENT_REPLAY = "movement_replay"
    """Folding the movement log for a (product, branch) in seq order
    reproduces its quantity. Enforced by StockMovementLog being the only
    writer of quantity."""

    RESERVATION_ACCOUNTING = "reservation_accounting"
    """While an order holds stock, its item quantities are part of reserved.
    Enforced by ReservationManager being the only writer of reserved."""

    ORDER_LIFECYCLE = "order_lifecycle"
    """Order status moves only along allowed edges. Enforced by
    OrderStateMachine and the order status ORM listener."""

    APPEND_ONLY_MOVEMENTS = "append_only_movements"
    """Stock movements and order items are never updated or deleted.
    Enforced by ORM listeners and PostgreSQL triggers."""

    ALL_OR_NOTHING = "all_or_nothing"
    """A multi-item reservation, a sale commit and a transfer are one
    transaction each. Enforced by savepoints and the FulfillmentService
    transaction boundary."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# Sole writer of each inventory counter (module path, relative to repo root).
# Enforced by tests/architecture/test_single_writer.py.
COUNTER_WRITERS: dict[str, str] = {
    "adjust_quantity": "stock_kernel/services/movement_log.py",
    "adjust_reserved": "stock_kernel/services/reservation_manager.py",
}
