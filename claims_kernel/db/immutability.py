"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, we raise ImmutabilityViolationError and the flush is
aborted. The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|------------------------------------------------------------
AuditEntry      | ALWAYS immutable, never deleted
PaymentBatch    | ALWAYS immutable, never deleted
Claim           | lecturer_id, hours_worked, amount, submitted_at and
                | resubmitted_from_id frozen; payment_batch_id set at most
                | once; terminal claims change only payment stamp and audit
                | bookkeeping; never deleted

Mapper before_update fires for every dirty instance, including ones whose
only change is a collection.  The checks therefore look at column
attribute history, not at the fact that the event fired.

===============================================================================
USAGE
===============================================================================

Called once at application startup (claims_config.bridges.init_database):

    from claims_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from claims_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from claims_kernel.exceptions import ImmutabilityViolationError
from claims_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

CLAIM_FROZEN_FIELDS = frozenset({
    "lecturer_id",
    "hours_worked",
    "amount",
    "submitted_at",
    "resubmitted_from_id",
})

# Columns a claim in a terminal status may still change
CLAIM_TERMINAL_MUTABLE_FIELDS = frozenset({
    "is_paid",
    "payment_date",
    "payment_batch_id",
    "audit_seq",
    "audit_head_hash",
    "version",
    "updated_at",
})


def _changed_columns(target) -> list[str]:
    """Names of column attributes with pending changes on ``target``."""
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_entry_immutability(mapper, connection, target):
    """Audit entries are never modified."""
    changed = _changed_columns(target)
    if changed:
        _block(
            "AuditEntry",
            target.id,
            "UPDATE",
            f"Audit entries are immutable; attempted to change {sorted(changed)}",
        )


def _check_audit_entry_delete(mapper, connection, target):
    _block("AuditEntry", target.id, "DELETE", "Audit entries cannot be deleted")


def _check_payment_batch_immutability(mapper, connection, target):
    """Payment batches are never modified."""
    changed = _changed_columns(target)
    if changed:
        _block(
            "PaymentBatch",
            target.id,
            "UPDATE",
            f"Payment batches are immutable; attempted to change {sorted(changed)}",
        )


def _check_payment_batch_delete(mapper, connection, target):
    _block("PaymentBatch", target.id, "DELETE", "Payment batches cannot be deleted")


def _check_claim_immutability(mapper, connection, target):
    """
    Enforce the claim mutation rules.

    The status the claim had when loaded decides whether the terminal rule
    applies; the transition into a terminal status is itself allowed.
    """
    from claims_kernel.domain.claim_lifecycle import is_terminal

    changed = set(_changed_columns(target))
    if not changed:
        return

    frozen = changed & CLAIM_FROZEN_FIELDS
    if frozen:
        _block(
            "Claim",
            target.id,
            "UPDATE",
            f"Fields {sorted(frozen)} cannot change after submission",
        )

    batch_history = get_history(target, "payment_batch_id")
    if batch_history.deleted and batch_history.deleted[0] is not None:
        _block(
            "Claim",
            target.id,
            "UPDATE",
            "payment_batch_id is already set and cannot change",
        )

    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    else:
        old_status = target.status

    if old_status is not None and is_terminal(old_status):
        disallowed = changed - CLAIM_TERMINAL_MUTABLE_FIELDS
        if disallowed:
            _block(
                "Claim",
                target.id,
                "UPDATE",
                f"Claim is {old_status}; fields {sorted(disallowed)} cannot change",
            )


def _check_claim_delete(mapper, connection, target):
    _block("Claim", target.id, "DELETE", "Claims are never deleted")


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Registering twice is harmless.
    """
    from claims_kernel.models.audit_entry import AuditEntry
    from claims_kernel.models.claim import Claim
    from claims_kernel.models.payment_batch import PaymentBatch

    for target, event_name, fn in _listeners(AuditEntry, Claim, PaymentBatch):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _listeners(AuditEntry, Claim, PaymentBatch):
    return (
        (AuditEntry, "before_update", _check_audit_entry_immutability),
        (AuditEntry, "before_delete", _check_audit_entry_delete),
        (PaymentBatch, "before_update", _check_payment_batch_immutability),
        (PaymentBatch, "before_delete", _check_payment_batch_delete),
        (Claim, "before_update", _check_claim_immutability),
        (Claim, "before_delete", _check_claim_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from claims_kernel.models.audit_entry import AuditEntry
    from claims_kernel.models.claim import Claim
    from claims_kernel.models.payment_batch import PaymentBatch

    for target, event_name, fn in _listeners(AuditEntry, Claim, PaymentBatch):
        _safe_remove_listener(target, event_name, fn)
