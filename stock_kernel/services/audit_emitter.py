"""
AuditEmitter -- fire-and-forget delivery of audit records.

Responsibility:
    Hands AuditRecords to the configured AuditSink after the producing
    transaction has committed.  A failing sink never fails the business
    operation: the failure is logged (``audit_emit_failed``) and dropped.

Architecture position:
    Kernel > Services.  Called only by FulfillmentService, after commit.
"""

from typing import Iterable

from stock_kernel.domain.audit import AuditRecord, AuditSink
from stock_kernel.logging_config import get_logger

logger = get_logger("services.audit")


class LoggingAuditSink:
    """Default sink: one structured log line per record."""

    def emit(self, record: AuditRecord) -> None:
        logger.info(
            "audit_record",
            extra={
                "audit_action": record.action.value,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "audit_actor_id": str(record.actor_id) if record.actor_id else None,
                "before_status": record.before_status,
                "after_status": record.after_status,
                "detail": dict(record.detail),
                "occurred_at": record.occurred_at,
            },
        )


class AuditEmitter:
    """Wraps an AuditSink and swallows its failures."""

    def __init__(self, sink: AuditSink | None = None):
        self._sink = sink if sink is not None else LoggingAuditSink()

    def emit(self, record: AuditRecord) -> bool:
        """Deliver one record. Returns False if the sink raised."""
        try:
            self._sink.emit(record)
        except Exception:
            logger.warning(
                "audit_emit_failed",
                extra={
                    "audit_action": record.action.value,
                    "entity_type": record.entity_type,
                    "entity_id": str(record.entity_id),
                },
                exc_info=True,
            )
            return False
        return True

    def emit_all(self, records: Iterable[AuditRecord]) -> int:
        """Deliver records in order; returns how many the sink accepted."""
        return sum(1 for record in records if self.emit(record))
