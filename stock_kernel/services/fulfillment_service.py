"""
FulfillmentService -- the exposed contract of the stock kernel.

Responsibility:
    Every caller-facing operation: reserve / confirm / cancel / pick up /
    deliver orders, change order status, record stock movements, and the
    read side (availability, inventory, orders, movements, ledger
    verification).  Owns the transaction boundary of each call.

Architecture position:
    Kernel > Services -- the outermost kernel service.  Transport (HTTP
    routes, request schemas) lives outside the kernel and calls this class.

Invariants enforced:
    ALL_OR_NOTHING -- one transaction per call.  Commit on success,
        rollback on any exception; nothing partial is ever visible.
    Conflicts (lock timeout, deadlock, "database is locked", stale
        version) roll back and retry the WHOLE operation up to
        ``settings.conflict_retries`` times, then raise ConflictError.
    Audit records are emitted only after commit, never for a rolled-back
        attempt.

Failure modes:
    - ValidationError before the transaction opens for malformed input.
    - NotFoundError, InsufficientStockError, InvalidTransitionError,
      OrderAlreadyTerminalError raised unchanged after rollback.
    - ConflictError once retries are exhausted.

Usage:
    service = FulfillmentService(get_session_factory(), settings=settings)
    order = service.reserve_order("centro", [ReserveItem("concha", 2)], actor)
    service.pickup_order(order.id, actor)   # after confirm/prepare/ready
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.config import KernelSettings
from stock_kernel.db.engine import apply_lock_timeout
from stock_kernel.domain.audit import AuditAction, AuditRecord, AuditSink
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    Actor,
    EntityRef,
    InventoryFilter,
    InventoryRecordView,
    ItemQuantity,
    LedgerDrift,
    MovementFilter,
    MovementSpec,
    OrderFilter,
    OrderView,
    Page,
    ReserveItem,
    StockMovementView,
    coalesce_items,
    to_money,
)
from stock_kernel.domain.movement_rules import (
    StockMovementType,
    parse_movement_type,
    validate_branches,
    validate_quantity,
)
from stock_kernel.domain.order_lifecycle import OrderStatus, parse_status
from stock_kernel.exceptions import ConflictError, StockKernelError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.catalog_selector import CatalogSelector
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.order_selector import OrderSelector
from stock_kernel.services.audit_emitter import AuditEmitter
from stock_kernel.services.inventory_ledger import InventoryLedgerStore
from stock_kernel.services.movement_log import StockMovementLog
from stock_kernel.services.order_state_machine import OrderStateMachine
from stock_kernel.services.reservation_manager import ReservationManager
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.fulfillment")

R = TypeVar("R")

# SQLSTATEs that mean "lost a race, try again": serialization failure,
# deadlock detected, lock_timeout expired.
_CONFLICT_PGCODES = frozenset({"40001", "40P01", "55P03"})
_CONFLICT_MESSAGES = ("database is locked", "database table is locked", "deadlock", "lock timeout")

_AUDIT_ACTION_BY_STATUS = {
    OrderStatus.CANCELLED: AuditAction.ORDER_CANCELLED,
    OrderStatus.PICKED_UP: AuditAction.ORDER_FULFILLED,
    OrderStatus.DELIVERED: AuditAction.ORDER_FULFILLED,
}


@dataclass
class _Kernel:
    """Services wired to one session (one attempt of one operation)."""

    session: Session
    catalog: CatalogSelector
    ledger: InventoryLedgerStore
    movements: StockMovementLog
    reservations: ReservationManager
    orders: OrderStateMachine


def _conflict_from_db_error(exc: DBAPIError, operation: str) -> ConflictError | None:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    message = str(orig if orig is not None else exc).lower()
    if pgcode in _CONFLICT_PGCODES or any(m in message for m in _CONFLICT_MESSAGES):
        return ConflictError(
            entity_type="transaction",
            entity_id=operation,
            reason=message.splitlines()[0] if message else type(exc).__name__,
        )
    return None


def _as_uuid(value: UUID | str, field_name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(field_name, f"not a valid id: {value!r}") from None


def _coerce_items(items: Iterable[Any]) -> list[ReserveItem]:
    if items is None or isinstance(items, (str, bytes, Mapping)):
        raise ValidationError("items", "must be a non-empty list of items")
    coerced = []
    for raw in items:
        if isinstance(raw, ReserveItem):
            coerced.append(raw)
        elif isinstance(raw, Mapping):
            ref = raw.get("product_ref", raw.get("product_id"))
            coerced.append(ReserveItem(product_ref=ref, quantity=raw.get("quantity")))
        elif isinstance(raw, tuple) and len(raw) == 2:
            coerced.append(ReserveItem(product_ref=raw[0], quantity=raw[1]))
        else:
            raise ValidationError("items", f"unsupported item {raw!r}")
    if not coerced:
        raise ValidationError("items", "must not be empty")
    return coerced


class FulfillmentService:
    """
    Transaction-owning facade over the kernel services.

    Contract:
        Receives a session factory; every call opens its own session, so an
        instance may be shared between threads.

    Guarantees:
        - One transaction per call; commit on success, rollback on failure.
        - Whole-operation retry on ConflictError.
        - One audit record per successful state-changing call, after commit.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or KernelSettings()
        self._clock = clock or SystemClock()
        self._audit = AuditEmitter(audit_sink)

    # =========================================================================
    # Transaction runner
    # =========================================================================

    def _wire(self, session: Session) -> _Kernel:
        ledger = InventoryLedgerStore(session, self._clock)
        sequences = SequenceService(session)
        movements = StockMovementLog(session, ledger, sequences, self._clock)
        reservations = ReservationManager(session, ledger, movements, self._clock)
        orders = OrderStateMachine(
            session, reservations, sequences, self._settings, self._clock
        )
        return _Kernel(
            session=session,
            catalog=CatalogSelector(session),
            ledger=ledger,
            movements=movements,
            reservations=reservations,
            orders=orders,
        )

    def _run(
        self,
        operation: str,
        work: Callable[[_Kernel], tuple[R, list[AuditRecord]]],
        *,
        actor: Actor | None = None,
        order_id: UUID | None = None,
    ) -> R:
        attempts = self._settings.conflict_retries + 1
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.log_id if actor else None,
            order_id=str(order_id) if order_id else None,
            operation=operation,
        ):
            t0 = time.monotonic()
            for attempt in range(1, attempts + 1):
                session = self._session_factory()
                try:
                    apply_lock_timeout(session, self._settings.lock_timeout_ms)
                    result, audit_records = work(self._wire(session))
                    session.commit()
                except ConflictError as exc:
                    session.rollback()
                    conflict = exc
                except (DBAPIError, StaleDataError) as exc:
                    session.rollback()
                    if isinstance(exc, StaleDataError):
                        conflict = ConflictError("transaction", operation, "stale row version")
                    else:
                        conflict = _conflict_from_db_error(exc, operation)
                    if conflict is None:
                        logger.error("operation_failed", exc_info=True)
                        raise
                    conflict.__cause__ = exc
                except StockKernelError as exc:
                    session.rollback()
                    logger.info(
                        "operation_rejected",
                        extra={"error_code": exc.code, "error": str(exc)},
                    )
                    raise
                except Exception:
                    session.rollback()
                    logger.error("operation_failed", exc_info=True)
                    raise
                else:
                    logger.debug(
                        "operation_completed",
                        extra={
                            "attempt": attempt,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                    self._audit.emit_all(audit_records)
                    return result
                finally:
                    session.close()

                if attempt >= attempts:
                    logger.warning(
                        "operation_conflict_exhausted",
                        extra={"attempts": attempt, "reason": conflict.reason},
                    )
                    raise conflict
                logger.warning(
                    "operation_conflict_retry",
                    extra={"attempt": attempt, "max_attempts": attempts, "reason": conflict.reason},
                )
                time.sleep(self._settings.retry_backoff_ms * attempt / 1000)

        raise AssertionError("unreachable")

    def _audit_record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        actor: Actor | None,
        *,
        before_status: str | None = None,
        after_status: str | None = None,
        detail: Mapping[str, Any] | None = None,
    ) -> AuditRecord:
        return AuditRecord(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor.user_id if actor else None,
            occurred_at=self._clock.now(),
            before_status=before_status,
            after_status=after_status,
            detail=detail or {},
        )

    # =========================================================================
    # Orders
    # =========================================================================

    def reserve_order(
        self,
        branch_ref: EntityRef,
        items: Iterable[Any],
        actor: Actor | None = None,
        *,
        payment_method: str | None = None,
        delivery_fee: Any = 0,
        discount: Any = 0,
    ) -> OrderView:
        """
        Hold every item at the branch and create the order in PENDING.

        Items may be ReserveItem instances, ``(product_ref, quantity)``
        tuples or mappings with ``product_ref``/``product_id`` and
        ``quantity``.  Lines for the same product are merged.

        Raises:
            ValidationError, BranchNotFoundError, ProductNotFoundError,
            InsufficientStockError (nothing held), ConflictError.
        """
        requested = _coerce_items(items)
        fee = to_money(delivery_fee, "delivery_fee")
        off = to_money(discount, "discount")

        def work(k: _Kernel) -> tuple[OrderView, list[AuditRecord]]:
            branch = k.catalog.get_branch(branch_ref)
            products = [k.catalog.get_product(item.product_ref) for item in requested]
            prices = {p.id: p.price for p in products}
            lines = coalesce_items(
                ItemQuantity(product.id, item.quantity)
                for product, item in zip(products, requested)
            )
            order = k.orders.create_order(
                branch.id,
                lines,
                prices,
                user_id=actor.user_id if actor else None,
                payment_method=payment_method,
                delivery_fee=fee,
                discount=off,
            )
            view = OrderView.from_model(order)
            record = self._audit_record(
                AuditAction.ORDER_RESERVED,
                "Order",
                order.id,
                actor,
                after_status=view.status.value,
                detail={
                    "order_number": view.order_number,
                    "branch_id": str(branch.id),
                    "total": str(view.total),
                    "items": [
                        {"product_id": str(i.product_id), "quantity": i.quantity}
                        for i in view.items
                    ],
                },
            )
            return view, [record]

        return self._run("reserve_order", work, actor=actor)

    def change_order_status(
        self,
        order_id: UUID | str,
        new_status: OrderStatus | str,
        actor: Actor | None = None,
    ) -> OrderView:
        """
        Apply any allowed edge with its inventory effect.

        Raises:
            ValidationError (unknown status), OrderNotFoundError,
            OrderAlreadyTerminalError, InvalidTransitionError.
        """
        target = parse_status(new_status)
        oid = _as_uuid(order_id, "order_id")

        def work(k: _Kernel) -> tuple[OrderView, list[AuditRecord]]:
            result = k.orders.transition(oid, target, actor)
            view = OrderView.from_model(result.order)
            record = self._audit_record(
                _AUDIT_ACTION_BY_STATUS.get(target, AuditAction.ORDER_STATUS_CHANGED),
                "Order",
                oid,
                actor,
                before_status=result.before.value,
                after_status=result.after.value,
                detail={"order_number": view.order_number, "effect": result.effect.value},
            )
            return view, [record]

        return self._run(f"order_{target.value.lower()}", work, actor=actor, order_id=oid)

    def confirm_order(self, order_id: UUID | str, actor: Actor | None = None) -> OrderView:
        return self.change_order_status(order_id, OrderStatus.CONFIRMED, actor)

    def cancel_order(self, order_id: UUID | str, actor: Actor | None = None) -> OrderView:
        """Release every hold. Not possible from IN_DELIVERY or a terminal status."""
        return self.change_order_status(order_id, OrderStatus.CANCELLED, actor)

    def pickup_order(self, order_id: UUID | str, actor: Actor | None = None) -> OrderView:
        """Commit the sale of a READY order."""
        return self.change_order_status(order_id, OrderStatus.PICKED_UP, actor)

    def deliver_order(self, order_id: UUID | str, actor: Actor | None = None) -> OrderView:
        """Commit the sale of an IN_DELIVERY order."""
        return self.change_order_status(order_id, OrderStatus.DELIVERED, actor)

    def get_order(self, order_id: UUID | str, user_id: UUID | None = None) -> OrderView:
        oid = _as_uuid(order_id, "order_id")
        return self._run(
            "get_order",
            lambda k: (OrderSelector(k.session).get_order(oid, user_id), []),
            order_id=oid,
        )

    def list_orders(self, order_filter: OrderFilter | None = None) -> Page[OrderView]:
        """Newest first. An unknown branch reference yields an empty page."""
        f = order_filter or OrderFilter()

        def work(k: _Kernel) -> tuple[Page[OrderView], list[AuditRecord]]:
            branch_id = None
            if f.branch_ref is not None:
                branch = k.catalog.find_branch(f.branch_ref)
                if branch is None:
                    return Page(items=(), page=f.page, page_size=f.page_size, total=0), []
                branch_id = branch.id
            page = OrderSelector(k.session).list_orders(
                branch_id=branch_id,
                status=f.status,
                user_id=f.user_id,
                page=f.page,
                page_size=f.page_size,
            )
            return page, []

        return self._run("list_orders", work)

    # =========================================================================
    # Inventory and movements
    # =========================================================================

    def record_movement(
        self,
        movement_type: StockMovementType | str,
        quantity: int,
        product_ref: EntityRef,
        from_branch_ref: EntityRef | None = None,
        to_branch_ref: EntityRef | None = None,
        reference_id: UUID | None = None,
        note: str | None = None,
        actor: Actor | None = None,
    ) -> StockMovementView:
        """
        Record a manual stock movement (production, purchase, waste, loss,
        surplus, sale, transfer).

        Raises:
            ValidationError, ProductNotFoundError, BranchNotFoundError,
            InsufficientStockError (nothing applied), ConflictError.
        """
        kind = parse_movement_type(movement_type)
        validate_quantity(quantity)
        validate_branches(kind, from_branch_ref, to_branch_ref)
        if reference_id is not None:
            reference_id = _as_uuid(reference_id, "reference_id")

        def work(k: _Kernel) -> tuple[StockMovementView, list[AuditRecord]]:
            product = k.catalog.get_product(product_ref)
            from_branch = k.catalog.get_branch(from_branch_ref) if from_branch_ref is not None else None
            to_branch = k.catalog.get_branch(to_branch_ref) if to_branch_ref is not None else None
            spec = MovementSpec(
                movement_type=kind,
                quantity=quantity,
                product_id=product.id,
                from_branch_id=from_branch.id if from_branch else None,
                to_branch_id=to_branch.id if to_branch else None,
                reference_id=reference_id,
                note=note,
            )
            movement = k.movements.record(spec, actor)
            view = StockMovementView.from_model(movement)
            record = self._audit_record(
                AuditAction.MOVEMENT_RECORDED,
                "StockMovement",
                movement.id,
                actor,
                detail={
                    "seq": view.seq,
                    "movement_type": kind.value,
                    "quantity": quantity,
                    "product_id": str(product.id),
                },
            )
            return view, [record]

        return self._run("record_movement", work, actor=actor)

    def get_available(self, product_ref: EntityRef, branch_ref: EntityRef | None = None) -> int:
        """
        Available quantity at one branch, or summed over all branches.

        Raises:
            ProductNotFoundError, BranchNotFoundError
        """

        def work(k: _Kernel) -> tuple[int, list[AuditRecord]]:
            product = k.catalog.get_product(product_ref)
            branch_id = k.catalog.get_branch(branch_ref).id if branch_ref is not None else None
            return k.ledger.get_available(product.id, branch_id), []

        return self._run("get_available", work)

    def list_inventory(
        self, inventory_filter: InventoryFilter | None = None
    ) -> list[InventoryRecordView]:
        """Read-only listing. An unknown reference yields an empty list."""
        f = inventory_filter or InventoryFilter()

        def work(k: _Kernel) -> tuple[list[InventoryRecordView], list[AuditRecord]]:
            product_id = branch_id = None
            if f.product_ref is not None:
                product = k.catalog.find_product(f.product_ref)
                if product is None:
                    return [], []
                product_id = product.id
            if f.branch_ref is not None:
                branch = k.catalog.find_branch(f.branch_ref)
                if branch is None:
                    return [], []
                branch_id = branch.id
            return InventorySelector(k.session).list_records(product_id, branch_id), []

        return self._run("list_inventory", work)

    def list_movements(
        self, movement_filter: MovementFilter | None = None
    ) -> Page[StockMovementView]:
        """Newest first. An unknown reference yields an empty page."""
        f = movement_filter or MovementFilter()

        def work(k: _Kernel) -> tuple[Page[StockMovementView], list[AuditRecord]]:
            empty = Page(items=(), page=f.page, page_size=f.page_size, total=0)
            product_id = branch_id = None
            if f.product_ref is not None:
                product = k.catalog.find_product(f.product_ref)
                if product is None:
                    return empty, []
                product_id = product.id
            if f.branch_ref is not None:
                branch = k.catalog.find_branch(f.branch_ref)
                if branch is None:
                    return empty, []
                branch_id = branch.id
            page = MovementSelector(k.session).list_movements(
                product_id=product_id,
                branch_id=branch_id,
                movement_type=f.movement_type,
                created_from=f.created_from,
                created_to=f.created_to,
                page=f.page,
                page_size=f.page_size,
            )
            return page, []

        return self._run("list_movements", work)

    def verify_ledger(
        self,
        product_ref: EntityRef | None = None,
        branch_ref: EntityRef | None = None,
    ) -> list[LedgerDrift]:
        """
        Replay history against the stored counters; empty means consistent.

        Raises:
            ProductNotFoundError, BranchNotFoundError
        """

        def work(k: _Kernel) -> tuple[list[LedgerDrift], list[AuditRecord]]:
            product_id = k.catalog.get_product(product_ref).id if product_ref is not None else None
            branch_id = k.catalog.get_branch(branch_ref).id if branch_ref is not None else None
            drifts = InventorySelector(k.session).verify(product_id, branch_id)
            if drifts:
                logger.warning(
                    "ledger_drift_detected",
                    extra={
                        "pairs": [
                            {
                                "product_id": str(d.product_id),
                                "branch_id": str(d.branch_id),
                                "quantity_drift": d.quantity_drift,
                                "reserved_drift": d.reserved_drift,
                            }
                            for d in drifts
                        ]
                    },
                )
            return drifts, []

        return self._run("verify_ledger", work)
