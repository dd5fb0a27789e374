"""
Append-only guard for PricingAuditEvent.

Mapper ``before_update`` and ``before_delete`` events fire during flush,
before any SQL is sent.  Raising ImmutabilityViolationError there aborts the
flush, and session_scope() then rolls the whole transaction back, so a
reconciliation record can never rewrite the history it is auditing.

init_engine_from_url() registers the guard; registering twice is harmless.
"""

from sqlalchemy import event

from pricing_kernel.exceptions import ImmutabilityViolationError
from pricing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_REASONS = {
    "UPDATE": "Audit events are immutable and cannot be modified",
    "DELETE": "Audit events cannot be deleted",
}


def _blocked(operation: str, target) -> ImmutabilityViolationError:
    entity_id = str(target.id)
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": "PricingAuditEvent", "entity_id": entity_id, "operation": operation},
    )
    return ImmutabilityViolationError(
        entity_type="PricingAuditEvent",
        entity_id=entity_id,
        reason=_REASONS[operation],
    )


def _reject_update(mapper, connection, target):
    raise _blocked("UPDATE", target)


def _reject_delete(mapper, connection, target):
    raise _blocked("DELETE", target)


_LISTENERS = (
    ("before_update", _reject_update),
    ("before_delete", _reject_delete),
)


def register_immutability_listeners() -> None:
    from pricing_kernel.models.audit_event import PricingAuditEvent

    for name, listener in _LISTENERS:
        if not event.contains(PricingAuditEvent, name, listener):
            event.listen(PricingAuditEvent, name, listener)
