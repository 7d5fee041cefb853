"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |                                            ^
         v                                            |
    [before_delete event] --> _check_*_delete() ------+
         |
         v
    SQL sent to database (only if checks pass)

Entity            | Rule
------------------|-----------------------------------------------------------
ContractVersion   | ALWAYS immutable (no UPDATE, no DELETE)
ChangeLogEntry    | ALWAYS immutable (no UPDATE, no DELETE)
AuditEvent        | ALWAYS immutable (no UPDATE, no DELETE)
Contract          | Never deleted.  Inserted only as DRAFT.  ``status`` changes
                  | only when the approval workflow authorized that exact
                  | value via ``ContractModel.authorize_status_change``.

===============================================================================
USAGE
===============================================================================

Called once during application startup:

    from clm_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from clm_kernel.exceptions import ImmutabilityViolationError
from clm_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Append-only records
# =============================================================================


def _check_version_update(mapper, connection, target):
    _block("ContractVersion", target, "UPDATE", "Contract versions are immutable")


def _check_version_delete(mapper, connection, target):
    _block("ContractVersion", target, "DELETE", "Contract versions cannot be deleted")


def _check_changelog_update(mapper, connection, target):
    _block("ChangeLogEntry", target, "UPDATE", "Changelog entries are immutable")


def _check_changelog_delete(mapper, connection, target):
    _block("ChangeLogEntry", target, "DELETE", "Changelog entries cannot be deleted")


def _check_audit_event_update(mapper, connection, target):
    _block("AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


# =============================================================================
# Contract rules
# =============================================================================


def _check_contract_insert(mapper, connection, target):
    """Contracts are born in DRAFT."""
    if target.status != "DRAFT":
        _block(
            "Contract", target, "INSERT",
            f"Contracts must be created in DRAFT, not {target.status}",
        )


def _check_contract_status_write(mapper, connection, target):
    """
    Block any status change the approval workflow did not authorize.

    Uses attribute history: if ``status`` has no pending change the update
    is a plain field edit and passes.
    """
    history = get_history(target, "status")
    if not history.added:
        return
    new_status = history.added[0]
    old_status = history.deleted[0] if history.deleted else None
    if new_status == old_status:
        return
    if getattr(target, "_authorized_status", None) != new_status:
        _block(
            "Contract", target, "UPDATE",
            f"Status {old_status} -> {new_status} was not made through the approval workflow",
        )


def _consume_status_token(mapper, connection, target):
    if getattr(target, "_authorized_status", None) is not None:
        target._authorized_status = None


def _check_contract_delete(mapper, connection, target):
    _block("Contract", target, "DELETE", "Contracts are never deleted")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from clm_kernel.models.audit_event import AuditEvent
    from clm_kernel.models.contract import ContractModel
    from clm_kernel.models.version import ChangeLogEntryModel, ContractVersionModel

    return (
        (ContractVersionModel, "before_update", _check_version_update),
        (ContractVersionModel, "before_delete", _check_version_delete),
        (ChangeLogEntryModel, "before_update", _check_changelog_update),
        (ChangeLogEntryModel, "before_delete", _check_changelog_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (ContractModel, "before_insert", _check_contract_insert),
        (ContractModel, "before_update", _check_contract_status_write),
        (ContractModel, "after_update", _consume_status_token),
        (ContractModel, "before_delete", _check_contract_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
