"""
Declarative base for the stock kernel schema.

Every model imports from here and nothing here imports from the rest of
the kernel.  Column conventions:

    UUID      -> String(36) via UUIDString (same on PostgreSQL and SQLite)
    Decimal   -> Numeric(38, 9), money in the store currency
    datetime  -> DateTime(timezone=True)
    int       -> BigInteger (counters and sequence values)
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(38, 9)


class UUIDString(TypeDecorator):
    """UUID held as its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Base for all models: uuid4 primary key plus the column conventions."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: MONEY,
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds ``created_at`` and ``updated_at``.

    Kernel services set both from their Clock.  The server defaults fill
    rows inserted by seed scripts and fixtures that do not pass them.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
