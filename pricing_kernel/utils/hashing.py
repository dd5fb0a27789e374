"""
Payload hashing for audit rows.

Every PricingAuditEvent stores ``payload_hash = hash_payload(payload)``.  The
payload is serialized canonically (sorted keys, compact separators, Decimal
normalized) so a row read back from the database hashes to the same value
it was written with.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 111.150 and 111.15 are the same amount
        return str(obj.normalize())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"Cannot hash value of type {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON text for ``data``."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_default)


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 (64 chars) of the canonical JSON of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
