"""Read-only selectors (query side)."""

from stock_kernel.selectors.catalog_selector import BranchInfo, CatalogSelector, ProductInfo
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.order_selector import OrderSelector

__all__ = [
    "BranchInfo",
    "CatalogSelector",
    "InventorySelector",
    "MovementSelector",
    "OrderSelector",
    "ProductInfo",
]
