"""
StockMovementLog -- append-only record of every on-hand stock change.

Responsibility:
    Validates a movement, applies its counter legs through
    InventoryLedgerStore.adjust_quantity, and appends the StockMovement row,
    all inside one savepoint.  This module is the ONLY caller of
    ``adjust_quantity``.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by FulfillmentService (manual movements) and ReservationManager
    (VENTA on pickup/delivery).

Invariants enforced:
    MOVEMENT_REPLAY -- quantity changes only together with an appended row,
        so folding the log in ``seq`` order reproduces ``quantity``.
    APPEND_ONLY_MOVEMENTS -- rows are only ever INSERTed.

Lock order:
    Inventory rows in ascending (product, branch) order, then the
    ``stock_movement`` counter row.  A transfer's two rows are locked in
    branch-id order before the counter.

Failure modes:
    - ValidationError from MovementSpec construction (before any mutation).
    - InsufficientStockError if a decreasing leg exceeds available; the
      savepoint is rolled back, so a transfer never half-applies.
"""

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import Actor, MovementSpec
from stock_kernel.domain.movement_rules import movement_legs, signed_delta
from stock_kernel.invariants import KernelInvariant
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_movement import StockMovement, StockMovementType
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_ledger import InventoryLedgerStore
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.movement_log")


class StockMovementLog(BaseService[StockMovement]):
    """
    Writer of the movement log and, through it, of ``quantity``.

    Guarantees:
        - One StockMovement row per recorded movement, TRANSFERENCIA included.
        - Either every leg and the row land, or none do.
    """

    def __init__(
        self,
        session: Session,
        ledger: InventoryLedgerStore,
        sequences: SequenceService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger
        self._sequences = sequences

    def record(self, spec: MovementSpec, actor: Actor | None = None) -> StockMovement:
        """
        Apply ``spec`` to the counters and append it to the log.

        Args:
            spec: Validated movement with resolved product and branch ids.
            actor: Recorded as ``created_by``.

        Returns:
            The flushed StockMovement row.
        """
        legs = movement_legs(
            spec.movement_type,
            spec.quantity,
            spec.from_branch_id,
            spec.to_branch_id,
        )

        with self.session.begin_nested():
            for leg in legs:
                self._ledger.adjust_quantity(spec.product_id, leg.branch_id, leg.delta)

            movement = StockMovement(
                seq=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
                movement_type=spec.movement_type.value,
                quantity=spec.quantity,
                product_id=spec.product_id,
                from_branch_id=spec.from_branch_id,
                to_branch_id=spec.to_branch_id,
                reference_id=spec.reference_id,
                note=spec.note,
                created_at=self.clock.now(),
                created_by=actor.user_id if actor else None,
            )
            self.session.add(movement)
            self.session.flush()

        logger.info(
            "movement_recorded",
            extra={
                "invariant": KernelInvariant.MOVEMENT_REPLAY.value,
                "movement_id": str(movement.id),
                "seq": movement.seq,
                "movement_type": spec.movement_type.value,
                "quantity": spec.quantity,
                "product_id": str(spec.product_id),
                "from_branch_id": str(spec.from_branch_id) if spec.from_branch_id else None,
                "to_branch_id": str(spec.to_branch_id) if spec.to_branch_id else None,
                "reference_id": str(spec.reference_id) if spec.reference_id else None,
            },
        )
        return movement

    def movements_for(self, product_id: UUID, branch_id: UUID) -> list[StockMovement]:
        """Every movement touching the pair, in ``seq`` order."""
        return list(
            self.session.execute(
                select(StockMovement)
                .where(
                    StockMovement.product_id == product_id,
                    or_(
                        StockMovement.from_branch_id == branch_id,
                        StockMovement.to_branch_id == branch_id,
                    ),
                )
                .order_by(StockMovement.seq)
            ).scalars()
        )

    def replay_quantity(self, product_id: UUID, branch_id: UUID) -> int:
        """Fold the log for the pair in ``seq`` order."""
        quantity = 0
        for movement in self.movements_for(product_id, branch_id):
            quantity += signed_delta(
                StockMovementType(movement.movement_type),
                movement.quantity,
                movement.from_branch_id,
                movement.to_branch_id,
                branch_id,
            )
        return quantity
