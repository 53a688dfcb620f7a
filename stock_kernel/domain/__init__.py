"""
Pure domain layer.

Transition tables, movement rules, DTOs and the audit record, with NO
dependencies on the ORM, the database or I/O (SystemClock aside).
"""

from stock_kernel.domain.audit import AuditAction, AuditRecord, AuditSink
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    SYSTEM_ACTOR,
    Actor,
    InventoryFilter,
    InventoryRecordView,
    ItemQuantity,
    LedgerDrift,
    MovementFilter,
    MovementSpec,
    OrderFilter,
    OrderItemView,
    OrderView,
    Page,
    ReserveItem,
    StockMovementView,
)
from stock_kernel.domain.movement_rules import MOVEMENT_RULES, StockMovementType
from stock_kernel.domain.order_lifecycle import (
    ALLOWED_TRANSITIONS,
    STOCK_HOLDING_STATUSES,
    TERMINAL_STATUSES,
    OrderEffect,
    OrderStatus,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Actor",
    "AuditAction",
    "AuditRecord",
    "AuditSink",
    "Clock",
    "DeterministicClock",
    "InventoryFilter",
    "InventoryRecordView",
    "ItemQuantity",
    "LedgerDrift",
    "MOVEMENT_RULES",
    "MovementFilter",
    "MovementSpec",
    "OrderEffect",
    "OrderFilter",
    "OrderItemView",
    "OrderStatus",
    "OrderView",
    "Page",
    "ReserveItem",
    "STOCK_HOLDING_STATUSES",
    "SYSTEM_ACTOR",
    "StockMovementView",
    "StockMovementType",
    "SystemClock",
    "TERMINAL_STATUSES",
]
