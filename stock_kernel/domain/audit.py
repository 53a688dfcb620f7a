"""
Audit records -- what the kernel tells the external audit log.

Responsibility:
    The AuditRecord value and the AuditSink protocol.  Persistence and
    querying of audit records belong to the external collaborator behind
    the sink.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID


class AuditAction(str, Enum):
    """State-changing operations reported to the audit log."""

    ORDER_RESERVED = "order_reserved"
    ORDER_STATUS_CHANGED = "order_status_changed"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_FULFILLED = "order_fulfilled"
    MOVEMENT_RECORDED = "movement_recorded"


@dataclass(frozen=True)
class AuditRecord:
    """One audit entry, emitted after the transaction that produced it commits."""

    action: AuditAction
    entity_type: str
    entity_id: UUID
    actor_id: UUID | None
    occurred_at: datetime
    before_status: str | None = None
    after_status: str | None = None
    detail: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "detail", MappingProxyType(dict(self.detail)))


@runtime_checkable
class AuditSink(Protocol):
    """Receiver of audit records. Implementations may raise; callers log it."""

    def emit(self, record: AuditRecord) -> None: ...
