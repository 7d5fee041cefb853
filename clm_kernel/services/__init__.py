"""Kernel services: sequences, version storage, audit and notification ports."""

from clm_kernel.services.sequence_service import SequenceService
from clm_kernel.services.version_store import VersionStore
from clm_kernel.services.audit_service import (
    AuditRecord,
    AuditService,
    AuditSink,
    DatabaseAuditSink,
)
from clm_kernel.services.notification_service import (
    LoggingNotificationSink,
    NotificationSink,
    WorkflowNotification,
)

__all__ = [
    "SequenceService",
    "VersionStore",
    "AuditRecord",
    "AuditService",
    "AuditSink",
    "DatabaseAuditSink",
    "NotificationSink",
    "LoggingNotificationSink",
    "WorkflowNotification",
]
