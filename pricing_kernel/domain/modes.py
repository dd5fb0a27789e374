"""
Allocation modes and party roles.

The three paper-supply arrangements are a closed enum.  Legacy records carried
two independent booleans (printer supplies material, intermediary waives
material margin); from_legacy_flags() is the only place that pair is accepted,
and it refuses the combination where both are set.
"""

from enum import Enum

from pricing_kernel.exceptions import InvalidModeError


class AllocationMode(str, Enum):
    """How the customer's payment is split among the four parties."""

    STANDARD = "STANDARD"
    PRINTER_SUPPLIES_MATERIAL = "PRINTER_SUPPLIES_MATERIAL"
    INTERMEDIARY_WAIVES_MATERIAL_MARGIN = "INTERMEDIARY_WAIVES_MATERIAL_MARGIN"

    @property
    def forces_zero_markup(self) -> bool:
        """Supply and waiver modes bill material at cost."""
        return self is not AllocationMode.STANDARD

    @classmethod
    def parse(cls, value: "AllocationMode | str") -> "AllocationMode":
        """
        Parse a persisted or user-supplied mode tag.

        Accepts enum members and their string values, case-insensitively,
        with '-' treated as '_'.

        Raises:
            InvalidModeError: If the tag is not one of the three modes.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidModeError(value, "mode must be a string tag")
        tag = value.strip().upper().replace("-", "_")
        try:
            return cls(tag)
        except ValueError:
            raise InvalidModeError(value) from None

    @classmethod
    def from_legacy_flags(
        cls,
        printer_supplies_material: bool,
        intermediary_waives_margin: bool,
    ) -> "AllocationMode":
        """
        Map the legacy boolean pair onto a mode.

        Raises:
            InvalidModeError: If both flags are set.
        """
        if printer_supplies_material and intermediary_waives_margin:
            raise InvalidModeError(
                (printer_supplies_material, intermediary_waives_margin),
                "printer-supplies-material and intermediary-waives-margin "
                "are mutually exclusive",
            )
        if printer_supplies_material:
            return cls.PRINTER_SUPPLIES_MATERIAL
        if intermediary_waives_margin:
            return cls.INTERMEDIARY_WAIVES_MATERIAL_MARGIN
        return cls.STANDARD

    def to_legacy_flags(self) -> tuple[bool, bool]:
        """Inverse of from_legacy_flags()."""
        return (
            self is AllocationMode.PRINTER_SUPPLIES_MATERIAL,
            self is AllocationMode.INTERMEDIARY_WAIVES_MATERIAL_MARGIN,
        )


class PartyRole(str, Enum):
    """The four parties on every job."""

    CUSTOMER = "customer"
    BROKER = "broker"
    INTERMEDIARY = "intermediary"
    PRINTER = "printer"
