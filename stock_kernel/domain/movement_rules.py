"""
Movement rules -- which branch each movement type touches, and how.

Responsibility:
    Pure table mapping a StockMovementType to its effect on ``quantity``,
    plus the input validation every movement passes before any mutation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValidationError for a non-positive, non-int or oversized quantity, a missing
      required branch, a branch the type does not use, or a transfer whose
      source and destination are the same branch.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import ValidationError

# Counters and movement quantities are BIGINT columns.
MAX_QUANTITY = 2**63 - 1


class StockMovementType(str, Enum):
    """Kinds of on-hand stock change."""

    PRODUCCION = "PRODUCCION"
    COMPRA = "COMPRA"
    VENTA = "VENTA"
    MERMA = "MERMA"
    PERDIDA_ROBO = "PERDIDA_ROBO"
    SOBRANTE = "SOBRANTE"
    TRANSFERENCIA = "TRANSFERENCIA"


@dataclass(frozen=True)
class MovementRule:
    """Branch usage of one movement type."""

    decreases_from: bool
    increases_to: bool

    @property
    def uses_from(self) -> bool:
        return self.decreases_from

    @property
    def uses_to(self) -> bool:
        return self.increases_to


MOVEMENT_RULES: dict[StockMovementType, MovementRule] = {
    StockMovementType.PRODUCCION: MovementRule(decreases_from=False, increases_to=True),
    StockMovementType.COMPRA: MovementRule(decreases_from=False, increases_to=True),
    StockMovementType.VENTA: MovementRule(decreases_from=True, increases_to=False),
    StockMovementType.MERMA: MovementRule(decreases_from=True, increases_to=False),
    StockMovementType.PERDIDA_ROBO: MovementRule(decreases_from=True, increases_to=False),
    StockMovementType.SOBRANTE: MovementRule(decreases_from=False, increases_to=True),
    StockMovementType.TRANSFERENCIA: MovementRule(decreases_from=True, increases_to=True),
}


@dataclass(frozen=True)
class MovementLeg:
    """One counter change produced by a movement."""

    branch_id: UUID
    delta: int


def parse_movement_type(value: "StockMovementType | str") -> StockMovementType:
    if isinstance(value, StockMovementType):
        return value
    try:
        return StockMovementType(str(value).upper())
    except ValueError:
        raise ValidationError("type", f"unknown movement type {value!r}") from None


def validate_quantity(quantity: object, field: str = "quantity") -> int:
    """Positive int only; bool is rejected even though it is an int."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(field, f"must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise ValidationError(field, f"must be positive, got {quantity}")
    if quantity > MAX_QUANTITY:
        raise ValidationError(field, f"must not exceed {MAX_QUANTITY}, got {quantity}")
    return quantity


def validate_branches(
    movement_type: StockMovementType,
    from_branch_id: UUID | None,
    to_branch_id: UUID | None,
) -> None:
    rule = MOVEMENT_RULES[movement_type]
    if rule.uses_from and from_branch_id is None:
        raise ValidationError(
            "from_branch", f"{movement_type.value} requires a source branch"
        )
    if not rule.uses_from and from_branch_id is not None:
        raise ValidationError(
            "from_branch", f"{movement_type.value} does not take a source branch"
        )
    if rule.uses_to and to_branch_id is None:
        raise ValidationError(
            "to_branch", f"{movement_type.value} requires a destination branch"
        )
    if not rule.uses_to and to_branch_id is not None:
        raise ValidationError(
            "to_branch", f"{movement_type.value} does not take a destination branch"
        )
    if rule.uses_from and rule.uses_to and from_branch_id == to_branch_id:
        raise ValidationError(
            "to_branch", "source and destination branch must differ"
        )


def movement_legs(
    movement_type: StockMovementType,
    quantity: int,
    from_branch_id: UUID | None,
    to_branch_id: UUID | None,
) -> list[MovementLeg]:
    """
    Counter changes for a validated movement, in lock order.

    Legs are sorted by branch id so a transfer locks its two rows in the
    same order as every other writer.
    """
    rule = MOVEMENT_RULES[movement_type]
    legs = []
    if rule.decreases_from:
        legs.append(MovementLeg(branch_id=from_branch_id, delta=-quantity))
    if rule.increases_to:
        legs.append(MovementLeg(branch_id=to_branch_id, delta=quantity))
    return sorted(legs, key=lambda leg: str(leg.branch_id))


def signed_delta(
    movement_type: StockMovementType,
    quantity: int,
    from_branch_id: UUID | None,
    to_branch_id: UUID | None,
    branch_id: UUID,
) -> int:
    """Effect of one recorded movement on ``branch_id`` (0 if untouched)."""
    rule = MOVEMENT_RULES[movement_type]
    delta = 0
    if rule.decreases_from and from_branch_id == branch_id:
        delta -= quantity
    if rule.increases_to and to_branch_id == branch_id:
        delta += quantity
    return delta
