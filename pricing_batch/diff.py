"""
pricing_batch.diff -- Compare stored pricing against a recomputed breakdown.

Shared by the reconciliation runner and the pricing service: both compute a
diff, and both write by applying that diff, so the set of fields a save can
touch is defined once.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pricing_batch.types import FieldChange
from pricing_engines.allocation import Breakdown
from pricing_engines.legs import PURCHASE_ORDER_LEGS
from pricing_engines.units import UnitConverter
from pricing_kernel.domain.fields import PRICING_COLUMNS
from pricing_kernel.domain.modes import PartyRole
from pricing_kernel.models.documents import PurchaseOrderModel
from pricing_kernel.models.job import JobPricingModel

JOB_ENTITY = "job"
PO_ENTITY_PREFIX = "purchase_order:"

PO_AMOUNT_FIELDS = ("original_amount", "vendor_amount", "margin_amount")


def index_purchase_orders(
    purchase_orders: Iterable[PurchaseOrderModel],
) -> dict[str, PurchaseOrderModel]:
    """Key POs by leg name ("broker->intermediary")."""
    return {
        f"{PartyRole(po.origin_party).value}->{PartyRole(po.target_party).value}": po
        for po in purchase_orders
    }


def diff_job(
    job: JobPricingModel,
    breakdown: Breakdown,
    converter: UnitConverter,
) -> list[FieldChange]:
    """Stored job fields that differ from the breakdown by more than tolerance."""
    changes: list[FieldChange] = []
    new_values = breakdown.pricing_values()
    for column in PRICING_COLUMNS:
        old = getattr(job, column)
        new = new_values[column]
        if old is None or not converter.within_tolerance(old, new):
            changes.append(FieldChange(JOB_ENTITY, column, old, new))

    if job.mode != breakdown.mode.value:
        changes.append(FieldChange(JOB_ENTITY, "mode", job.mode, breakdown.mode.value))
    if bool(job.requires_approval) != breakdown.requires_approval:
        changes.append(
            FieldChange(JOB_ENTITY, "requires_approval", job.requires_approval, breakdown.requires_approval)
        )
    if breakdown.paper_weight_total is not None and (
        job.paper_weight_total is None
        or not converter.within_tolerance(job.paper_weight_total, breakdown.paper_weight_total)
    ):
        changes.append(
            FieldChange(JOB_ENTITY, "paper_weight_total", job.paper_weight_total, breakdown.paper_weight_total)
        )
    return changes


def diff_purchase_orders(
    purchase_orders: Mapping[str, PurchaseOrderModel],
    breakdown: Breakdown,
    converter: UnitConverter,
) -> list[FieldChange]:
    """
    Amount drift on existing POs.

    Legs without a PO produce no changes; creating documents is not a
    pricing concern.
    """
    changes: list[FieldChange] = []
    for leg in PURCHASE_ORDER_LEGS:
        po = purchase_orders.get(leg.name)
        if po is None:
            continue
        expected = leg.expected_amounts(breakdown)
        for name in PO_AMOUNT_FIELDS:
            old = getattr(po, name)
            new = expected[name]
            if old is None or not converter.within_tolerance(old, new):
                changes.append(FieldChange(PO_ENTITY_PREFIX + leg.name, name, old, new))
    return changes


def apply_changes(
    job: JobPricingModel,
    purchase_orders: Mapping[str, PurchaseOrderModel],
    changes: Iterable[FieldChange],
) -> None:
    """Write each change onto its ORM object."""
    for change in changes:
        if change.entity == JOB_ENTITY:
            setattr(job, change.field, change.new)
        elif change.entity.startswith(PO_ENTITY_PREFIX):
            po = purchase_orders[change.entity[len(PO_ENTITY_PREFIX):]]
            setattr(po, change.field, change.new)
        else:
            raise ValueError(f"Unknown change entity {change.entity!r}")


def changes_payload(changes: Iterable[FieldChange]) -> dict[str, dict[str, object]]:
    """Split changes into JSON-ready ``old`` / ``new`` maps for audit rows."""
    old: dict[str, object] = {}
    new: dict[str, object] = {}
    for change in changes:
        data = change.to_dict()
        key = change.field if change.entity == JOB_ENTITY else f"{change.entity}.{change.field}"
        old[key] = data["old"]
        new[key] = data["new"]
    return {"old": old, "new": new}
