"""
Module: pricing_engines.rates
Responsibility: In-memory lookup of per-size baseline rates.  Built from the
    configuration baseline or from persisted rate rows; the engines only ever
    see this pure structure.
Architecture position: Engines.  Pure data access, no I/O.  Loading rows from
    the database is the service layer's job (pricing_services).

Invariants enforced:
    - Size keys are normalized (trimmed, single-spaced, " x " separator) both
      when stored and when looked up, so "9 3/4x22 1/8" finds "9 3/4 x 22 1/8".
    - At most one entry per normalized size key.
    - material_cost_cpm = paper_weight_per_m * paper_cost_per_lb, rounded to
      cents like every other rate on the grid.

Failure modes:
    - ValueError on duplicate size keys at construction.
    - UnknownSizeError from require() when no entry exists.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pricing_kernel.db.types import round_money, to_decimal
from pricing_kernel.exceptions import UnknownSizeError

_WHITESPACE = re.compile(r"\s+")
_SEPARATOR = re.compile(r"\s*[xX×]\s*")


def normalize_size_key(size_key: str) -> str:
    """Canonical form of a size key."""
    collapsed = _WHITESPACE.sub(" ", size_key.strip())
    return _SEPARATOR.sub(" x ", collapsed)


@dataclass(frozen=True)
class RateTableEntry:
    """Baseline rates for one size, per thousand pieces."""

    size_key: str
    print_cpm: Decimal
    paper_weight_per_m: Decimal
    paper_cost_per_lb: Decimal
    paper_charge_cpm: Decimal
    standard_customer_cpm: Decimal
    minimum_customer_cpm: Decimal | None = None
    paper_type: str | None = None

    @property
    def material_cost_cpm(self) -> Decimal:
        """What the paper actually costs per thousand pieces."""
        return round_money(self.paper_weight_per_m * self.paper_cost_per_lb)

    @property
    def material_markup_cpm(self) -> Decimal:
        return self.paper_charge_cpm - self.material_cost_cpm

    @property
    def threshold_cpm(self) -> Decimal:
        """Lowest customer rate that does not need approval."""
        if self.minimum_customer_cpm is not None and self.minimum_customer_cpm > 0:
            return self.minimum_customer_cpm
        return self.standard_customer_cpm


def entry_from_record(record: Any) -> RateTableEntry:
    """
    Build an entry from any object exposing the rate attributes.

    Accepts configuration RateDef objects and RateTableEntryModel rows alike.
    """
    minimum = getattr(record, "minimum_customer_cpm", None)
    return RateTableEntry(
        size_key=normalize_size_key(record.size_key),
        print_cpm=to_decimal(record.print_cpm),
        paper_weight_per_m=to_decimal(record.paper_weight_per_m),
        paper_cost_per_lb=to_decimal(record.paper_cost_per_lb),
        paper_charge_cpm=to_decimal(record.paper_charge_cpm),
        standard_customer_cpm=to_decimal(record.standard_customer_cpm),
        minimum_customer_cpm=to_decimal(minimum) if minimum is not None else None,
        paper_type=getattr(record, "paper_type", None),
    )


class RateTable:
    """Immutable size -> RateTableEntry lookup."""

    def __init__(self, entries: Iterable[RateTableEntry] = ()):
        by_key: dict[str, RateTableEntry] = {}
        for entry in entries:
            key = normalize_size_key(entry.size_key)
            if key in by_key:
                raise ValueError(f"Duplicate rate table entry for size {key!r}")
            by_key[key] = entry
        self._entries = by_key

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> RateTable:
        """
        Build from RateDef objects or persisted rows.

        Rows carrying ``is_active = False`` are left out.
        """
        return cls(
            entry_from_record(r)
            for r in records
            if getattr(r, "is_active", True)
        )

    def get(self, size_key: str | None) -> RateTableEntry | None:
        if not size_key:
            return None
        return self._entries.get(normalize_size_key(size_key))

    def require(self, size_key: str | None) -> RateTableEntry:
        entry = self.get(size_key)
        if entry is None:
            raise UnknownSizeError(size_key)
        return entry

    def sizes(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, size_key: object) -> bool:
        return isinstance(size_key, str) and self.get(size_key) is not None

    def __iter__(self) -> Iterator[RateTableEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
