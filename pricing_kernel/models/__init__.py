"""ORM models for the pricing kernel."""

from pricing_kernel.models.audit_event import PricingAuditAction, PricingAuditEvent
from pricing_kernel.models.documents import InvoiceModel, PurchaseOrderModel
from pricing_kernel.models.job import JobPricingModel
from pricing_kernel.models.rate import RateTableEntryModel

__all__ = [
    "InvoiceModel",
    "JobPricingModel",
    "PricingAuditAction",
    "PricingAuditEvent",
    "PurchaseOrderModel",
    "RateTableEntryModel",
]
