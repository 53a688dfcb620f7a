"""Kernel services (command side)."""

from stock_kernel.services.audit_emitter import AuditEmitter, LoggingAuditSink
from stock_kernel.services.fulfillment_service import FulfillmentService
from stock_kernel.services.inventory_ledger import InventoryLedgerStore
from stock_kernel.services.movement_log import StockMovementLog
from stock_kernel.services.order_state_machine import OrderStateMachine, TransitionResult
from stock_kernel.services.reservation_manager import ReservationManager
from stock_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditEmitter",
    "FulfillmentService",
    "InventoryLedgerStore",
    "LoggingAuditSink",
    "OrderStateMachine",
    "ReservationManager",
    "SequenceService",
    "StockMovementLog",
    "TransitionResult",
]
