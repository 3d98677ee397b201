"""
Declarative base for the billtrack tables.

Conventions every model inherits:

* ``id``: uuid4 primary key, stored as ``String(36)`` so the same schema
  runs on PostgreSQL and SQLite.
* ``Decimal`` columns are ``Numeric(38, 9)``.  Money is rounded to two
  places before it is stored (``db.types.round2``); the extra scale only
  keeps rates and intermediate values exact.  SQLite reads values back with
  nine places, so compare amounts numerically.
* ``datetime`` columns are timezone-aware and always load as UTC.

``TrackedBase`` adds who/when columns.  ``created_by_id`` is mandatory:
every transaction, payment row, settlement record and roster entry names
the actor that created it.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in a ``String(36)`` column."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """Aware datetimes; naive values read back from SQLite are tagged UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Creation and last-update stamps.

    Services pass ``created_at`` from their injected clock so reports bucket
    rows deterministically; the server default covers direct inserts.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
