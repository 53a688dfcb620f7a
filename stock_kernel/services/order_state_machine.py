"""
OrderStateMachine -- validated order transitions and their inventory effects.

Responsibility:
    Creates orders (reserving their items) and moves them along the edges
    of ``stock_kernel.domain.order_lifecycle``, triggering the
    ReservationManager effect each edge carries.  The only writer of
    ``Order.status``.

Architecture position:
    Kernel > Services -- imperative shell.  Called by FulfillmentService.

Invariants enforced:
    ORDER_LIFECYCLE -- a transition is evaluated against the locked order
        row, so two racing transitions on one order serialize and the loser
        sees the winner's status.
    RESERVATION_ACCOUNTING -- leaving a stock-holding status releases or
        commits exactly the order's items.

Failure modes:
    - OrderNotFoundError: unknown order id.
    - OrderAlreadyTerminalError / InvalidTransitionError: order unchanged.
    - InsufficientStockError on creation: no order row, nothing held.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.config import KernelSettings
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import Actor, ItemQuantity, coalesce_items
from stock_kernel.domain.order_lifecycle import (
    INITIAL_STATUS,
    OrderEffect,
    OrderStatus,
    check_transition,
)
from stock_kernel.exceptions import OrderNotFoundError, ValidationError
from stock_kernel.invariants import KernelInvariant
from stock_kernel.logging_config import get_logger
from stock_kernel.models.order import Order, OrderItem
from stock_kernel.services.base import BaseService
from stock_kernel.services.reservation_manager import ReservationManager
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.order_state_machine")


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    before: OrderStatus
    after: OrderStatus
    effect: OrderEffect


class OrderStateMachine(BaseService[Order]):
    """Creates orders and applies status transitions."""

    def __init__(
        self,
        session: Session,
        reservations: ReservationManager,
        sequences: SequenceService,
        settings: KernelSettings | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._reservations = reservations
        self._sequences = sequences
        self._settings = settings or KernelSettings()

    def lock_order(self, order_id: UUID) -> Order:
        """Lock the order row (always the first row an order operation locks)."""
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def create_order(
        self,
        branch_id: UUID,
        items: Sequence[ItemQuantity],
        unit_prices: Mapping[UUID, Decimal],
        *,
        user_id: UUID | None = None,
        payment_method: str | None = None,
        delivery_fee: Decimal = Decimal("0"),
        discount: Decimal = Decimal("0"),
    ) -> Order:
        """
        Reserve every item and create the order in PENDING.

        Totals are checked before anything is held.  If the reservation
        fails, no order row, no order number and no hold exist.
        """
        subtotal = sum(
            (unit_prices[line.product_id] * line.quantity for line in coalesce_items(items)),
            Decimal("0"),
        )
        total = subtotal + delivery_fee - discount
        if total < 0:
            raise ValidationError(
                "discount",
                f"{discount} exceeds subtotal plus delivery fee ({subtotal + delivery_fee})",
            )

        lines = self._reservations.reserve_for_order(branch_id, items)

        now = self.clock.now()
        order_number = self._settings.format_order_number(
            self._sequences.next_value(SequenceService.ORDER_NUMBER)
        )
        order = Order(
            order_number=order_number,
            status=INITIAL_STATUS.value,
            branch_id=branch_id,
            user_id=user_id,
            payment_method=payment_method,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount=discount,
            total=total,
            created_at=now,
            updated_at=now,
        )
        order.items = [
            OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=unit_prices[line.product_id],
                created_at=now,
            )
            for line in lines
        ]
        self.session.add(order)
        self.session.flush()

        logger.info(
            "order_reserved",
            extra={
                "order_id": str(order.id),
                "order_number": order_number,
                "branch_id": str(branch_id),
                "status": order.status,
                "total": total,
                "line_count": len(lines),
            },
        )
        return order

    def transition(
        self,
        order_id: UUID,
        target: OrderStatus,
        actor: Actor | None = None,
    ) -> TransitionResult:
        """
        Move the order to ``target`` and apply the edge's effect.

        Raises:
            OrderNotFoundError, OrderAlreadyTerminalError,
            InvalidTransitionError
        """
        order = self.lock_order(order_id)
        before = OrderStatus(order.status)
        effect = check_transition(str(order.id), before, target)

        items = [ItemQuantity(item.product_id, item.quantity) for item in order.items]
        if effect is OrderEffect.RELEASE:
            self._reservations.release_for_order(order.branch_id, items)
        elif effect is OrderEffect.COMMIT_SALE:
            self._reservations.commit_sale_for_order(
                order.branch_id, items, reference_id=order.id, actor=actor
            )

        order.status = target.value
        order.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "order_status_changed",
            extra={
                "invariant": KernelInvariant.ORDER_LIFECYCLE.value,
                "order_id": str(order.id),
                "from_status": before.value,
                "to_status": target.value,
                "effect": effect.value,
            },
        )
        return TransitionResult(order=order, before=before, after=target, effect=effect)
