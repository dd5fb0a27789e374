"""
Names of the priced fields shared by breakdowns and stored job records.

Each field is carried as a ``<field>_total`` / ``<field>_cpm`` pair.
"""

PRICING_FIELDS: tuple[str, ...] = (
    "customer",
    "broker_margin",
    "intermediary",
    "intermediary_print_margin",
    "intermediary_material_margin",
    "intermediary_total_margin",
    "printer",
    "material_cost",
    "material_charge",
)


def total_column(field: str) -> str:
    return "intermediary_total" if field == "intermediary" else f"{field}_total"


def cpm_column(field: str) -> str:
    return f"{field}_cpm"


PRICING_COLUMNS: tuple[str, ...] = tuple(
    column
    for field in PRICING_FIELDS
    for column in (total_column(field), cpm_column(field))
)
