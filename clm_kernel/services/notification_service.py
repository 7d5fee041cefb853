"""
Workflow notifications -- outbound port and the default logging sink.

Responsibility:
    Describes who should hear about a workflow transition.  Delivery
    (email, in-app) belongs to an external collaborator that implements
    ``NotificationSink``; the kernel ships only a sink that logs.

Architecture position:
    Kernel > Services.  Called best-effort by ApprovalWorkflowService after
    a transition is flushed; a failing sink never undoes the transition.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from clm_kernel.logging_config import get_logger

logger = get_logger("services.notification")


@dataclass(frozen=True)
class WorkflowNotification:
    """A workflow event addressed to a role or a named user."""

    event: str
    organization_id: UUID
    contract_id: UUID
    contract_reference: str
    actor_id: UUID
    from_status: str
    to_status: str
    recipient_role: str | None = None
    recipient_user_id: UUID | None = None
    comment: str | None = None
    days_remaining: int | None = None


@runtime_checkable
class NotificationSink(Protocol):
    """Outbound port for workflow notifications."""

    def notify(self, notification: WorkflowNotification) -> None: ...


class LoggingNotificationSink:
    """Default sink: one structured log line per notification."""

    def notify(self, notification: WorkflowNotification) -> None:
        logger.info(
            "workflow_notification",
            extra={
                "event": notification.event,
                "contract_id": str(notification.contract_id),
                "contract_reference": notification.contract_reference,
                "from_status": notification.from_status,
                "to_status": notification.to_status,
                "recipient_role": notification.recipient_role,
                "days_remaining": notification.days_remaining,
                "recipient_user_id": (
                    str(notification.recipient_user_id)
                    if notification.recipient_user_id else None
                ),
            },
        )
