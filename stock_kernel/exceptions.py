"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (the HTTP boundary, batch jobs, tests) must be able to
react to a failure without parsing its message:

    try:
        service.reserve_order(branch, items, actor)
    except InsufficientStockError as e:
        respond(code=e.code, product=e.product_id, available=e.available)

Every exception therefore has:
  1. A TYPED class (catch by type, not message)
  2. A class-level CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes naming the failing entity

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- ProductNotFoundError
    |   +-- BranchNotFoundError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- InvalidReservationError
    |
    +-- OrderError
    |   +-- InvalidTransitionError
    |       +-- OrderAlreadyTerminalError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|------------------------------------------
Validation    | VALIDATION_ERROR         | Malformed input, rejected before mutation
--------------|--------------------------|------------------------------------------
Not found     | ORDER_NOT_FOUND          | Order id does not exist
              | PRODUCT_NOT_FOUND        | Product id/slug does not exist
              | BRANCH_NOT_FOUND         | Branch id/slug does not exist
--------------|--------------------------|------------------------------------------
Inventory     | INSUFFICIENT_STOCK       | Reservation or decrease exceeds available
              | INVALID_RESERVATION      | reserved would become negative
--------------|--------------------------|------------------------------------------
Order         | INVALID_TRANSITION       | Status change is not an allowed edge
              | ORDER_ALREADY_TERMINAL   | Action on PICKED_UP/DELIVERED/CANCELLED
--------------|--------------------------|------------------------------------------
Concurrency   | CONFLICT                 | Lock timeout, deadlock, stale version
--------------|--------------------------|------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION   | UPDATE/DELETE of an append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConflictError means "retry the WHOLE operation". Never retry a subset of
   the items of an order: a partial retry can double-reserve.

2. OrderAlreadyTerminalError is an InvalidTransitionError. Catch the base
   class when the distinction does not matter.

3. Every error carries enough data to name the failing entity. Map it to a
   transport response at the boundary; the kernel never formats responses.

===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Malformed input rejected before any mutation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not found


class NotFoundError(StockKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_ref: str):
        self.entity_ref = entity_ref
        super().__init__(f"{self.entity_type} not found: {entity_ref}")


class OrderNotFoundError(NotFoundError):
    """Order with the given id was not found."""

    code: str = "ORDER_NOT_FOUND"
    entity_type: str = "Order"


class ProductNotFoundError(NotFoundError):
    """Product with the given id or slug was not found."""

    code: str = "PRODUCT_NOT_FOUND"
    entity_type: str = "Product"


class BranchNotFoundError(NotFoundError):
    """Branch with the given id or slug was not found."""

    code: str = "BRANCH_NOT_FOUND"
    entity_type: str = "Branch"


# Inventory


class InventoryError(StockKernelError):
    """Base exception for inventory counter errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """
    A reservation or a decreasing movement would exceed what is available.

    No partial effect remains when this is raised.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        branch_id: str,
        requested: int,
        available: int,
    ):
        self.product_id = product_id
        self.branch_id = branch_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id} at branch {branch_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidReservationError(InventoryError):
    """The reserved counter would become negative."""

    code: str = "INVALID_RESERVATION"

    def __init__(self, product_id: str, branch_id: str, reserved: int, delta: int):
        self.product_id = product_id
        self.branch_id = branch_id
        self.reserved = reserved
        self.delta = delta
        super().__init__(
            f"Reserved for product {product_id} at branch {branch_id} "
            f"cannot change by {delta} (currently {reserved})"
        )


# Order lifecycle


class OrderError(StockKernelError):
    """Base exception for order lifecycle errors."""

    code: str = "ORDER_ERROR"


class InvalidTransitionError(OrderError):
    """Requested status change is not an allowed edge. Order left unchanged."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, order_id: str, current_status: str, attempted_status: str):
        self.order_id = order_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(self._describe())

    def _describe(self) -> str:
        return (
            f"Order {self.order_id} cannot move from {self.current_status} "
            f"to {self.attempted_status}"
        )


class OrderAlreadyTerminalError(InvalidTransitionError):
    """Action requested against a PICKED_UP, DELIVERED or CANCELLED order."""

    code: str = "ORDER_ALREADY_TERMINAL"

    def _describe(self) -> str:
        return (
            f"Order {self.order_id} is already {self.current_status}; "
            f"cannot move to {self.attempted_status}"
        )


# Concurrency


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """
    Concurrent write detected. The caller must retry the entire operation.
    """

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: {reason}"
        )


# Immutability


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    StockMovement and OrderItem rows are append-only; Order rows are never
    deleted and change status only along allowed edges.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
