"""
Module: pricing_kernel.models.rate
Responsibility: ORM persistence for the per-size baseline rate grid.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - size_key is unique and stored in normalized form ("9 3/4 x 22 1/8").
    - All rates are per thousand pieces (CPM); paper weight is lb per thousand.

Failure modes:
    - IntegrityError on duplicate size_key.
"""

from decimal import Decimal

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pricing_kernel.db.base import TrackedBase


class RateTableEntryModel(TrackedBase):
    """One row of the rate grid."""

    __tablename__ = "rate_table_entries"

    __table_args__ = (
        UniqueConstraint("size_key", name="uq_rate_size_key"),
    )

    size_key: Mapped[str] = mapped_column(String(100), nullable=False)

    # Printer's charge per thousand
    print_cpm: Mapped[Decimal] = mapped_column(nullable=False)

    # Paper pounds per thousand pieces and paper cost per pound
    paper_weight_per_m: Mapped[Decimal] = mapped_column(nullable=False)
    paper_cost_per_lb: Mapped[Decimal] = mapped_column(nullable=False)

    # Intermediary's resale rate for paper, per thousand
    paper_charge_cpm: Mapped[Decimal] = mapped_column(nullable=False)

    standard_customer_cpm: Mapped[Decimal] = mapped_column(nullable=False)

    minimum_customer_cpm: Mapped[Decimal | None] = mapped_column(nullable=True)

    paper_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<RateTableEntry {self.size_key}: customer {self.standard_customer_cpm}/M>"
