"""ORM models for the stock kernel."""

from stock_kernel.models.catalog import Branch, Product
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.order import Order, OrderItem
from stock_kernel.models.sequence import SequenceCounter
from stock_kernel.models.stock_movement import StockMovement, StockMovementType

__all__ = [
    "Branch",
    "InventoryRecord",
    "Order",
    "OrderItem",
    "Product",
    "SequenceCounter",
    "StockMovement",
    "StockMovementType",
]
