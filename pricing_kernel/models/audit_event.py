"""
Module: pricing_kernel.models.audit_event
Responsibility: ORM persistence for pricing audit rows: who changed which
    job's pricing, when, and from what to what.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE
      (ORM listeners in pricing_kernel.db.immutability).
    - payload_hash = SHA-256 of the canonical JSON payload.
    - Rows are independent: there is no chain linking one row to the previous
      one, so concurrent reconciliation workers never contend on a shared tail.

Audit relevance:
    One row per priced job and one row per record changed by a reconciliation
    apply run.  The payload carries ``old`` and ``new`` value maps.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import Base, UUIDString


class PricingAuditAction(str, Enum):
    """Types of auditable pricing actions."""

    JOB_PRICED = "job_priced"
    JOB_REPRICED = "job_repriced"
    JOB_RECONCILED = "job_reconciled"
    RATE_TABLE_SEEDED = "rate_table_seeded"


class PricingAuditEvent(Base):
    """
    Append-only audit row.

    Guarantees:
        - payload_hash always matches payload (computed by the writer).
        - actor_id is a free-form actor string (user email, service name).
    """

    __tablename__ = "pricing_audit_events"

    __table_args__ = (
        Index("idx_pricing_audit_entity", "entity_type", "entity_id"),
        Index("idx_pricing_audit_job", "job_number"),
        Index("idx_pricing_audit_action", "action"),
        Index("idx_pricing_audit_run", "run_id"),
    )

    # e.g. "JobPricing", "RateTable"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    job_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    action: Mapped[PricingAuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Reconciliation run that produced the row, if any
    run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<PricingAuditEvent {self.action} on {self.entity_type}:{self.job_number}>"
