"""
Module: pricing_kernel.models.documents
Responsibility: ORM persistence for the business documents issued along the
    party chain: purchase orders and invoices.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - PurchaseOrderModel: margin_amount = original_amount - vendor_amount.
      Checked by the consistency validator, repaired by reconciliation.
    - InvoiceModel: once issued, amount is the source of truth for its leg.
      Nothing in the pricing system writes it.
    - At most one PO and one invoice per (job, origin, target) leg.

Audit relevance:
    PO amounts corrected by reconciliation are recorded in the same audit row
    as the job pricing change that caused them.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase, UUIDString
from pricing_kernel.domain.modes import PartyRole


class PurchaseOrderModel(TrackedBase):
    """
    Directional purchase order between two parties for one job.

    The origin pays the target.  ``original_amount`` is what the origin is
    billed upstream, ``vendor_amount`` what it owes the target, and the
    difference is the origin's margin on the leg.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint(
            "job_id", "origin_party", "target_party", name="uq_po_job_leg"
        ),
        Index("idx_po_job", "job_id"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_pricing.id"),
        nullable=False,
    )

    po_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    origin_party: Mapped[PartyRole] = mapped_column(String(20), nullable=False)

    target_party: Mapped[PartyRole] = mapped_column(String(20), nullable=False)

    original_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    vendor_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    margin_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    @property
    def leg(self) -> str:
        return f"{PartyRole(self.origin_party).value}->{PartyRole(self.target_party).value}"

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} {self.leg}: {self.vendor_amount}>"


class InvoiceModel(TrackedBase):
    """Directional billing record: ``from_party`` bills ``to_party``."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "job_id", "from_party", "to_party", name="uq_invoice_job_leg"
        ),
        Index("idx_invoice_job", "job_id"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_pricing.id"),
        nullable=False,
    )

    invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    from_party: Mapped[PartyRole] = mapped_column(String(20), nullable=False)

    to_party: Mapped[PartyRole] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    @property
    def leg(self) -> str:
        return f"{PartyRole(self.from_party).value}->{PartyRole(self.to_party).value}"

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.leg}: {self.amount}>"
