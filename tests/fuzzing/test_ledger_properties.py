"""
Property-based tests for the inventory ledger.

Hypothesis drives random sequences of purchases, shrinkage, reservations,
cancellations and pickups against one product and checks after every
sequence that:

- 0 <= reserved <= quantity
- folding the movement log reproduces quantity
- reserved equals the sum of the items of orders still holding stock
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.dtos import ItemQuantity, MovementSpec
from stock_kernel.domain.movement_rules import StockMovementType
from stock_kernel.domain.order_lifecycle import OrderStatus
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.models.catalog import Product
from stock_kernel.selectors.inventory_selector import InventorySelector

OPERATIONS = st.sampled_from(["buy", "shrink", "order", "cancel", "pickup"])

PICKUP_PATH = (
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.PICKED_UP,
)


def _new_product(session, price):
    product = Product(id=uuid4(), slug=f"fuzz-{uuid4().hex[:12]}", name="Fuzz", price=price)
    session.add(product)
    session.flush()
    return product.id


@settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)
@given(data=st.data())
def test_random_operations_preserve_ledger(
    data, session, catalog, ledger, movement_log, order_machine
):
    branch = catalog.branch("centro")
    product = _new_product(session, catalog.prices["bolillo"])
    prices = {product: catalog.prices["bolillo"]}
    holding: dict = {}

    movement_log.record(
        MovementSpec(
            StockMovementType.COMPRA,
            data.draw(st.integers(min_value=1, max_value=20)),
            product,
            to_branch_id=branch,
        )
    )

    for _ in range(data.draw(st.integers(min_value=1, max_value=12))):
        operation = data.draw(OPERATIONS)
        quantity = data.draw(st.integers(min_value=1, max_value=8))

        if operation == "buy":
            movement_log.record(
                MovementSpec(StockMovementType.COMPRA, quantity, product, to_branch_id=branch)
            )
        elif operation == "shrink":
            try:
                movement_log.record(
                    MovementSpec(
                        StockMovementType.MERMA, quantity, product, from_branch_id=branch
                    )
                )
            except InsufficientStockError:
                pass
        elif operation == "order":
            try:
                order = order_machine.create_order(
                    branch, [ItemQuantity(product, quantity)], prices
                )
            except InsufficientStockError:
                continue
            holding[order.id] = quantity
        elif holding:
            order_id = data.draw(st.sampled_from(sorted(holding, key=str)))
            if operation == "cancel":
                order_machine.transition(order_id, OrderStatus.CANCELLED)
            else:
                for status in PICKUP_PATH:
                    order_machine.transition(order_id, status)
            del holding[order_id]

    record = ledger.get_record(product, branch)
    assert 0 <= record.reserved <= record.quantity
    assert movement_log.replay_quantity(product, branch) == record.quantity
    assert record.reserved == sum(holding.values())
    assert InventorySelector(session).verify(product_id=product) == []
