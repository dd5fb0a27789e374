"""
Declarative base for the pricing tables.

Every row gets a uuid4 primary key stored as a 36-character string, so the
same schema runs on SQLite (tests, local reconciliation) and PostgreSQL.
Decimal columns default to Numeric(38, 9): money and CPM rates are never
stored as floats.

Rows that the reconciler or a desk user edits in place (job pricing, rate
grid rows, purchase orders, invoices) extend TrackedBase, which records who
last wrote them.  Audit events extend Base directly; they are insert-only.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in Python, String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Mutable row with server-side timestamps.

    ``updated_by`` is the actor of the last write.  It is left NULL for rows
    seeded from configuration rather than written by an actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    updated_by: Mapped[str | None] = mapped_column(String(100))
