"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Financial records must be tamper-proof.  Posted transactions cannot be
modified, only reversed with new entries that leave a visible paper trail.
These listeners intercept UPDATE and DELETE before the SQL is emitted and
abort the flush with ImmutabilityViolationError.

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _forbid_delete()  --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Mutable fields                     | Delete
--------------------|------------------------------------|--------
Journal             | status (active -> reversed/voided) | never
JournalEntry        | none                               | never
InventoryLayer      | quantity_remaining                 | never
InventoryMovement   | status (active -> reversed)        | never
InventoryShortfall  | quantity_outstanding, status       | never
                    | (open -> settled/cancelled)        |
AuditLogEntry       | none                               | never
AccountingPeriod    | while closed: status (reopen) only | never when closed
YearEndClosingRun   | none                               | never

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

Registered by ``create_engine_from_url``; registration is idempotent.

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _value(raw) -> str | None:
    """Normalize enum members and plain strings loaded from String columns."""
    if raw is None:
        return None
    return getattr(raw, "value", raw)


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    """Names of column attributes with pending changes, excluding audit metadata."""
    changed = []
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            changed.append(attr.key)
    return changed


def _status_transition(target) -> tuple[str | None, str | None]:
    hist = get_history(target, "status")
    old = _value(hist.deleted[0]) if hist.deleted else None
    new = _value(hist.added[0]) if hist.added else None
    return old, new


def _check_status_only_update(
    entity_type: str,
    target,
    allowed: dict[str, set[str]],
) -> None:
    """Allow only a whitelisted status transition; everything else is frozen."""
    for field in _changed_fields(target):
        if field != "status":
            _block(
                entity_type,
                target,
                "UPDATE",
                f"field '{field}' is immutable",
                field=field,
            )
    old, new = _status_transition(target)
    if new is None:
        return
    if new not in allowed.get(old, set()):
        _block(
            entity_type,
            target,
            "UPDATE",
            f"status transition {old} -> {new} is not allowed",
            field="status",
        )


def _check_journal_update(mapper, connection, target):
    """Journals are frozen except active -> reversed / voided."""
    _check_status_only_update(
        "Journal",
        target,
        {"active": {"reversed", "voided"}},
    )


def _check_movement_update(mapper, connection, target):
    """Movements are frozen except active -> reversed."""
    _check_status_only_update(
        "InventoryMovement",
        target,
        {"active": {"reversed"}},
    )


def _check_layer_update(mapper, connection, target):
    """Only quantity_remaining of a layer may move."""
    for field in _changed_fields(target):
        if field != "quantity_remaining":
            _block(
                "InventoryLayer",
                target,
                "UPDATE",
                f"field '{field}' is immutable",
                field=field,
            )


def _check_shortfall_update(mapper, connection, target):
    """Only the outstanding quantity and open -> settled/cancelled may change."""
    for field in _changed_fields(target):
        if field not in ("quantity_outstanding", "status"):
            _block(
                "InventoryShortfall",
                target,
                "UPDATE",
                f"field '{field}' is immutable",
                field=field,
            )
    old, new = _status_transition(target)
    if new is not None and new not in {"open": {"settled", "cancelled"}}.get(old, set()):
        _block(
            "InventoryShortfall",
            target,
            "UPDATE",
            f"status transition {old} -> {new} is not allowed",
            field="status",
        )


def _check_period_update(mapper, connection, target):
    """
    A closed period may only be reopened.

    "Was closed" is read from attribute history so the closing update
    itself (open -> closed, closed_at, closed_by_id) passes.
    """
    old, new = _status_transition(target)
    was_closed = old == "closed" if old is not None else _value(target.status) == "closed"
    if not was_closed:
        return
    for field in _changed_fields(target):
        if field not in ("status", "closed_at", "closed_by_id"):
            _block(
                "AccountingPeriod",
                target,
                "UPDATE",
                f"closed period field '{field}' is immutable",
                field=field,
            )
    if new is None and _changed_fields(target):
        _block("AccountingPeriod", target, "UPDATE", "closed period is immutable")


def _forbid_update(entity_type: str):
    def _listener(mapper, connection, target):
        if _changed_fields(target):
            _block(entity_type, target, "UPDATE", f"{entity_type} rows are append-only")

    _listener.__name__ = f"_forbid_{entity_type.lower()}_update"
    return _listener


def _forbid_delete(entity_type: str):
    def _listener(mapper, connection, target):
        _block(entity_type, target, "DELETE", f"{entity_type} rows are never deleted")

    _listener.__name__ = f"_forbid_{entity_type.lower()}_delete"
    return _listener


def _check_period_delete(mapper, connection, target):
    if _value(target.status) == "closed":
        _block("AccountingPeriod", target, "DELETE", "closed periods cannot be deleted")


_forbid_entry_update = _forbid_update("JournalEntry")
_forbid_audit_update = _forbid_update("AuditLogEntry")
_forbid_journal_delete = _forbid_delete("Journal")
_forbid_entry_delete = _forbid_delete("JournalEntry")
_forbid_layer_delete = _forbid_delete("InventoryLayer")
_forbid_movement_delete = _forbid_delete("InventoryMovement")
_forbid_shortfall_delete = _forbid_delete("InventoryShortfall")
_forbid_audit_delete = _forbid_delete("AuditLogEntry")
_forbid_closing_run_update = _forbid_update("YearEndClosingRun")
_forbid_closing_run_delete = _forbid_delete("YearEndClosingRun")


def _listeners():
    from ledger_kernel.models.accounting_period import AccountingPeriod, YearEndClosingRun
    from ledger_kernel.models.audit_log import AuditLogEntry
    from ledger_kernel.models.inventory import (
        InventoryLayer,
        InventoryMovement,
        InventoryShortfall,
    )
    from ledger_kernel.models.journal import Journal, JournalEntry

    return [
        (Journal, "before_update", _check_journal_update),
        (Journal, "before_delete", _forbid_journal_delete),
        (JournalEntry, "before_update", _forbid_entry_update),
        (JournalEntry, "before_delete", _forbid_entry_delete),
        (InventoryLayer, "before_update", _check_layer_update),
        (InventoryLayer, "before_delete", _forbid_layer_delete),
        (InventoryMovement, "before_update", _check_movement_update),
        (InventoryMovement, "before_delete", _forbid_movement_delete),
        (InventoryShortfall, "before_update", _check_shortfall_update),
        (InventoryShortfall, "before_delete", _forbid_shortfall_delete),
        (AuditLogEntry, "before_update", _forbid_audit_update),
        (AuditLogEntry, "before_delete", _forbid_audit_delete),
        (AccountingPeriod, "before_update", _check_period_update),
        (AccountingPeriod, "before_delete", _check_period_delete),
        (YearEndClosingRun, "before_update", _forbid_closing_run_update),
        (YearEndClosingRun, "before_delete", _forbid_closing_run_delete),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability enforcement listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the immutability listeners. TESTS ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
