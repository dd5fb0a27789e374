"""
Module: pricing_engines.legs
Responsibility: Map a breakdown onto the documents issued along the party
    chain: what each purchase order and each invoice should carry.
Architecture position: Engines.  Pure.

    Customer <-- Broker <-- Intermediary <-- Printer      (invoices)
                 Broker --> Intermediary --> Printer      (purchase orders)

    broker PO        original = customer_total      vendor = intermediary_total
    intermediary PO  original = intermediary_total  vendor = printer_total
    (margin = original - vendor on both)

    customer invoice      Broker -> Customer        customer_total
    intermediary invoice  Intermediary -> Broker    intermediary_total
    printer invoice       Printer -> Intermediary   printer_total
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pricing_config.schema import PartyConfig
from pricing_kernel.domain.modes import PartyRole


def party_label(role: PartyRole, parties: PartyConfig | None = None) -> str:
    """``role:id`` when the role has a configured id, else the bare role."""
    party_id = parties.party_id(role) if parties is not None else None
    return role.value if party_id is None else f"{role.value}:{party_id}"


@dataclass(frozen=True)
class PurchaseOrderLeg:
    origin: PartyRole
    target: PartyRole
    original_field: str
    vendor_field: str

    @property
    def name(self) -> str:
        return f"{self.origin.value}->{self.target.value}"

    def label(self, parties: PartyConfig | None = None) -> str:
        return f"{party_label(self.origin, parties)}->{party_label(self.target, parties)}"

    def expected_amounts(self, breakdown: Any) -> dict[str, Decimal]:
        original = getattr(breakdown, self.original_field)
        vendor = getattr(breakdown, self.vendor_field)
        return {
            "original_amount": original,
            "vendor_amount": vendor,
            "margin_amount": original - vendor,
        }


@dataclass(frozen=True)
class InvoiceLeg:
    from_party: PartyRole
    to_party: PartyRole
    amount_field: str

    @property
    def name(self) -> str:
        return f"{self.from_party.value}->{self.to_party.value}"

    def label(self, parties: PartyConfig | None = None) -> str:
        return f"{party_label(self.from_party, parties)}->{party_label(self.to_party, parties)}"

    def expected_amount(self, breakdown: Any) -> Decimal:
        return getattr(breakdown, self.amount_field)


BROKER_PO = PurchaseOrderLeg(
    PartyRole.BROKER, PartyRole.INTERMEDIARY, "customer_total", "intermediary_total"
)
INTERMEDIARY_PO = PurchaseOrderLeg(
    PartyRole.INTERMEDIARY, PartyRole.PRINTER, "intermediary_total", "printer_total"
)
PURCHASE_ORDER_LEGS: tuple[PurchaseOrderLeg, ...] = (BROKER_PO, INTERMEDIARY_PO)

CUSTOMER_INVOICE = InvoiceLeg(PartyRole.BROKER, PartyRole.CUSTOMER, "customer_total")
INTERMEDIARY_INVOICE = InvoiceLeg(
    PartyRole.INTERMEDIARY, PartyRole.BROKER, "intermediary_total"
)
PRINTER_INVOICE = InvoiceLeg(PartyRole.PRINTER, PartyRole.INTERMEDIARY, "printer_total")

# Invoices downstream of the customer leg; checked against the recomputed split
DOWNSTREAM_INVOICE_LEGS: tuple[InvoiceLeg, ...] = (INTERMEDIARY_INVOICE, PRINTER_INVOICE)
