"""
Module: pricing_kernel.models.job
Responsibility: ORM persistence for a job's stored pricing: inputs (size,
    quantity, mode) and every computed total with its paired CPM.
Architecture position: Kernel > Models.  May import from db/ and domain/.
    MUST NOT import from engines, batch, or services.

Invariants enforced:
    - job_number is unique (uq_job_pricing_number).
    - mode is one of the three AllocationMode values; stored as its string tag.
    - Every ``<field>_total`` is paired with ``<field>_cpm`` and the two must
      agree as cpm * quantity / 1000 within one cent.  Not enforced here: the
      consistency validator checks it and the reconciliation runner repairs it.

Failure modes:
    - IntegrityError on duplicate job_number.

Audit relevance:
    Each mutation made by the pricing service or the reconciliation runner is
    accompanied by a PricingAuditEvent holding the before/after values.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase
from pricing_kernel.domain.fields import PRICING_FIELDS, cpm_column, total_column
from pricing_kernel.domain.modes import AllocationMode


class JobPricingModel(TrackedBase):
    """
    Stored pricing for one job.

    Contract:
        Totals and CPMs are nullable because legacy rows were often partially
        filled; a null is reported as drift by reconciliation and filled in.
    """

    __tablename__ = "job_pricing"

    __table_args__ = (
        UniqueConstraint("job_number", name="uq_job_pricing_number"),
        Index("idx_job_pricing_mode", "mode"),
        Index("idx_job_pricing_size", "size_key"),
    )

    job_number: Mapped[str] = mapped_column(String(50), nullable=False)

    size_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(nullable=False)

    mode: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=AllocationMode.STANDARD.value,
    )

    # Quoted customer rate; reconciliation prices forward from it when no
    # customer invoice fixes the total
    customer_cpm_override: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Manual cost overrides for sizes off the rate grid
    print_cpm_override: Mapped[Decimal | None] = mapped_column(nullable=True)
    material_cost_cpm_override: Mapped[Decimal | None] = mapped_column(nullable=True)
    material_charge_cpm_override: Mapped[Decimal | None] = mapped_column(nullable=True)

    customer_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    customer_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    broker_margin_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    broker_margin_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    intermediary_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    intermediary_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    intermediary_print_margin_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    intermediary_print_margin_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    intermediary_material_margin_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    intermediary_material_margin_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    intermediary_total_margin_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    intermediary_total_margin_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    printer_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    printer_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    material_cost_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    material_cost_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    material_charge_total: Mapped[Decimal | None] = mapped_column(nullable=True)
    material_charge_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    paper_weight_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    requires_approval: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    @property
    def allocation_mode(self) -> AllocationMode:
        """Parsed mode; raises InvalidModeError on a corrupt tag."""
        return AllocationMode.parse(self.mode)

    def pricing_values(self) -> dict[str, Decimal | None]:
        """All stored total/CPM columns keyed by column name."""
        values: dict[str, Decimal | None] = {}
        for field in PRICING_FIELDS:
            values[total_column(field)] = getattr(self, total_column(field))
            values[cpm_column(field)] = getattr(self, cpm_column(field))
        return values

    def __repr__(self) -> str:
        return f"<JobPricing {self.job_number}: {self.quantity} @ {self.size_key} ({self.mode})>"
