"""
Best-effort delivery of audit records and notifications.

Each emission runs in its own savepoint.  A failing sink rolls back only
that savepoint and is logged at WARNING; the workflow change it describes
stays in the caller's transaction.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from clm_kernel.logging_config import get_logger
from clm_kernel.services.audit_service import AuditRecord, AuditSink
from clm_kernel.services.notification_service import (
    NotificationSink,
    WorkflowNotification,
)

logger = get_logger("services.side_effects")


def emit_audit(session: Session, sink: AuditSink, record: AuditRecord) -> bool:
    """Emit one audit record; returns False when the sink failed."""
    savepoint = session.begin_nested()
    try:
        sink.emit(record)
        session.flush()
        savepoint.commit()
    except Exception as exc:
        savepoint.rollback()
        logger.warning(
            "audit_emit_failed",
            extra={
                "action": record.action.value,
                "target_type": record.target_type,
                "target_id": str(record.target_id),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return False
    return True


def send_notification(
    session: Session,
    sink: NotificationSink,
    notification: WorkflowNotification,
) -> bool:
    """Deliver one notification; returns False when the sink failed."""
    savepoint = session.begin_nested()
    try:
        sink.notify(notification)
        savepoint.commit()
    except Exception as exc:
        savepoint.rollback()
        logger.warning(
            "notification_failed",
            extra={
                "event": notification.event,
                "contract_id": str(notification.contract_id),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return False
    return True
