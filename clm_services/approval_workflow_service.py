"""
clm_services.approval_workflow_service -- Contract approval workflow execution.

Responsibility:
    Runs one workflow action end-to-end: loads and locks the contract, finds
    the open approval record of the current phase, asks the pure state
    machine for a decision, applies it to the contract and record, opens the
    next phase record, and then emits the audit record and notification.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Thin coordinator: every legality decision is delegated to
    ``clm_engines.state_machine.next_status``.

Invariants enforced:
    - All writes of one action happen inside one savepoint; the caller owns
      the commit.
    - The contract row is read ``FOR UPDATE`` and both the contract and the
      approval record carry an optimistic ``lock_version``; a concurrent
      change surfaces as ApprovalConflictError, never as a double decision.
    - At most one open record per (contract, approval type): checked here
      before a record is opened, and backed by a partial unique index.
    - Contract status is written only through
      ``ContractModel.authorize_status_change``.
    - Audit and notification are best-effort: failures are logged at
      WARNING and never undo the transition.

Failure modes:
    - ContractNotFoundError: unknown contract or other tenant.
    - InvalidTransitionError / ForbiddenError / NoPendingApprovalError:
      state machine rejections.
    - CommentRequiredError: reject, request_revision and return_to_manager
      without a comment.
    - ApprovalConflictError: stale ``expected_status`` or a concurrent write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from clm_config.schema import EngineConfig
from clm_engines.state_machine import (
    RejectionKind,
    TransitionOutcome,
    find_transition,
    next_status,
)
from clm_kernel.domain.approval import (
    INITIAL_ROLE,
    OPEN_RECORD_STATUSES,
    ApprovalRecord,
    ApprovalRecordStatus,
    ApprovalType,
    ApproverRole,
)
from clm_kernel.domain.clock import Clock, SystemClock
from clm_kernel.domain.contract import Contract, ContractStatus
from clm_kernel.domain.workflow import WorkflowAction
from clm_kernel.exceptions import (
    ApprovalConflictError,
    ClmKernelError,
    CommentRequiredError,
    ForbiddenError,
    InvalidTransitionError,
    NoPendingApprovalError,
)
from clm_kernel.logging_config import LogContext, get_logger
from clm_kernel.models.approval import ApprovalRecordModel
from clm_kernel.models.audit_event import AuditAction
from clm_kernel.models.contract import ContractModel
from clm_kernel.services.audit_service import AuditRecord, AuditSink, DatabaseAuditSink
from clm_kernel.services.notification_service import (
    LoggingNotificationSink,
    NotificationSink,
    WorkflowNotification,
)
from clm_services._loading import load_contract
from clm_services._side_effects import emit_audit, send_notification

logger = get_logger("services.approval_workflow")


_AUDIT_ACTION: dict[WorkflowAction, AuditAction] = {
    WorkflowAction.SUBMIT: AuditAction.CONTRACT_SUBMITTED,
    WorkflowAction.APPROVE: AuditAction.APPROVAL_GRANTED,
    WorkflowAction.REJECT: AuditAction.APPROVAL_REJECTED,
    WorkflowAction.REQUEST_REVISION: AuditAction.REVISION_REQUESTED,
    WorkflowAction.ESCALATE: AuditAction.APPROVAL_ESCALATED,
    WorkflowAction.ESCALATE_TO_LEGAL_HEAD: AuditAction.ESCALATED_TO_LEGAL_HEAD,
    WorkflowAction.RETURN_TO_MANAGER: AuditAction.RETURNED_TO_MANAGER,
    WorkflowAction.SEND: AuditAction.CONTRACT_SENT,
    WorkflowAction.UPLOAD_SIGNED: AuditAction.CONTRACT_SIGNED_UPLOADED,
    WorkflowAction.ACTIVATE: AuditAction.CONTRACT_ACTIVATED,
    WorkflowAction.TERMINATE: AuditAction.CONTRACT_TERMINATED,
    WorkflowAction.EXPIRE: AuditAction.CONTRACT_EXPIRED,
}

# Timestamp column stamped when the contract enters a status
_STATUS_TIMESTAMP: dict[ContractStatus, str] = {
    ContractStatus.PENDING_LEGAL: "submitted_at",
    ContractStatus.APPROVED: "approved_at",
    ContractStatus.SENT_TO_COUNTERPARTY: "sent_at",
    ContractStatus.COUNTERSIGNED: "signed_at",
    ContractStatus.ACTIVE: "activated_at",
    ContractStatus.REJECTED: "closed_at",
    ContractStatus.EXPIRED: "closed_at",
    ContractStatus.TERMINATED: "closed_at",
}


@dataclass(frozen=True)
class ExpiryReminder:
    """An active contract reaching one of the reminder thresholds."""

    contract: Contract
    days_remaining: int


@dataclass
class _Applied:
    contract: ContractModel
    record: ApprovalRecordModel | None
    opened: ApprovalRecordModel | None
    outcome: TransitionOutcome


class ApprovalWorkflowService:
    """
    Executes contract workflow actions.

    Every public action takes the tenant, the acting user and the actor's
    resolved permission set; nothing is read from an ambient auth context.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT resolve permissions; it only checks membership.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        audit_sink: AuditSink | None = None,
        notification_sink: NotificationSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig()
        self._audit_sink = audit_sink or DatabaseAuditSink(session, self._clock)
        self._notification_sink = notification_sink or LoggingNotificationSink()

    # =====================================================================
    # Approval phase
    # =====================================================================

    def submit(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
    ) -> tuple[Contract, ApprovalRecord]:
        """DRAFT -> PENDING_LEGAL; opens the LEGAL approval record."""
        applied = self._execute(
            WorkflowAction.SUBMIT, contract_id, actor_id, organization_id, permissions,
        )
        return applied.contract.to_dto(), applied.opened.to_dto()

    def approve(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        comment: str | None = None,
        expected_status: ContractStatus | None = None,
    ) -> tuple[Contract, ApprovalRecord]:
        """Approve the open record of the current phase.

        Legal approval moves to PENDING_FINANCE (and opens the FINANCE
        record) or straight to APPROVED when finance approval is disabled.
        ``expected_status`` is an optional compare-and-swap token: when the
        contract is no longer in that status the call raises
        ApprovalConflictError instead of acting on a different phase.
        """
        applied = self._execute(
            WorkflowAction.APPROVE, contract_id, actor_id, organization_id, permissions,
            comment=comment, expected_status=expected_status,
        )
        return applied.contract.to_dto(), applied.record.to_dto()

    def reject(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        comment: str,
        expected_status: ContractStatus | None = None,
    ) -> tuple[Contract, ApprovalRecord]:
        """Reject the open record; the contract becomes REJECTED (terminal)."""
        applied = self._execute(
            WorkflowAction.REJECT, contract_id, actor_id, organization_id, permissions,
            comment=comment, expected_status=expected_status,
        )
        return applied.contract.to_dto(), applied.record.to_dto()

    def request_revision(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        comment: str,
        expected_status: ContractStatus | None = None,
    ) -> tuple[Contract, ApprovalRecord]:
        """Send the contract back to DRAFT for the author to revise."""
        applied = self._execute(
            WorkflowAction.REQUEST_REVISION, contract_id, actor_id, organization_id,
            permissions, comment=comment, expected_status=expected_status,
        )
        return applied.contract.to_dto(), applied.record.to_dto()

    def escalate(
        self,
        contract_id: UUID,
        actor_id: UUID,
        escalated_to_user_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        reason: str | None = None,
    ) -> Contract:
        """Hand the open LEGAL record to a named user.

        The contract stays PENDING_LEGAL; only that user may decide the
        record until it is escalated again or returned to the manager.
        """
        if escalated_to_user_id is None:
            raise ValueError("escalated_to_user_id is required")
        applied = self._execute(
            WorkflowAction.ESCALATE, contract_id, actor_id, organization_id, permissions,
            comment=reason, escalated_to_user_id=escalated_to_user_id,
        )
        return applied.contract.to_dto()

    def escalate_to_legal_head(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        reason: str | None = None,
        legal_head_user_id: UUID | None = None,
    ) -> Contract:
        """Reassign the open LEGAL record to the Legal Head.

        Without ``legal_head_user_id`` any Legal Head holding the legal act
        permission may decide the record.
        """
        applied = self._execute(
            WorkflowAction.ESCALATE_TO_LEGAL_HEAD, contract_id, actor_id,
            organization_id, permissions,
            comment=reason, escalated_to_user_id=legal_head_user_id,
        )
        return applied.contract.to_dto()

    def return_to_manager(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        comment: str,
    ) -> tuple[Contract, ApprovalRecord]:
        """Give an escalated LEGAL record back to the legal manager."""
        applied = self._execute(
            WorkflowAction.RETURN_TO_MANAGER, contract_id, actor_id, organization_id,
            permissions, comment=comment,
        )
        return applied.contract.to_dto(), applied.record.to_dto()

    # =====================================================================
    # Signature and post-signature
    # =====================================================================

    def send_to_counterparty(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
    ) -> Contract:
        return self._execute(
            WorkflowAction.SEND, contract_id, actor_id, organization_id, permissions,
        ).contract.to_dto()

    def upload_signed(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
    ) -> Contract:
        return self._execute(
            WorkflowAction.UPLOAD_SIGNED, contract_id, actor_id, organization_id,
            permissions,
        ).contract.to_dto()

    def activate(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
    ) -> Contract:
        return self._execute(
            WorkflowAction.ACTIVATE, contract_id, actor_id, organization_id, permissions,
        ).contract.to_dto()

    def terminate(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        reason: str | None = None,
    ) -> Contract:
        return self._execute(
            WorkflowAction.TERMINATE, contract_id, actor_id, organization_id,
            permissions, comment=reason,
        ).contract.to_dto()

    def expire(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
    ) -> Contract:
        return self._execute(
            WorkflowAction.EXPIRE, contract_id, actor_id, organization_id, permissions,
        ).contract.to_dto()

    # =====================================================================
    # Queries and sweeps
    # =====================================================================

    def get_pending_approvals(
        self,
        organization_id: UUID,
        approval_type: ApprovalType,
    ) -> list[ApprovalRecord]:
        """Open records of ``approval_type`` in the organization, oldest first."""
        models = self._session.execute(
            select(ApprovalRecordModel)
            .where(
                ApprovalRecordModel.organization_id == organization_id,
                ApprovalRecordModel.approval_type == approval_type.value,
                ApprovalRecordModel.status.in_([s.value for s in OPEN_RECORD_STATUSES]),
            )
            .order_by(ApprovalRecordModel.created_at, ApprovalRecordModel.id)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def find_expiring(
        self,
        organization_id: UUID,
        as_of: date,
        days: int,
    ) -> list[Contract]:
        """ACTIVE contracts whose end date falls within ``days`` of ``as_of``."""
        models = self._session.execute(
            select(ContractModel)
            .where(
                ContractModel.organization_id == organization_id,
                ContractModel.status == ContractStatus.ACTIVE.value,
                ContractModel.end_date >= as_of,
                ContractModel.end_date <= as_of + timedelta(days=days),
            )
            .order_by(ContractModel.end_date, ContractModel.reference)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def send_expiry_reminders(
        self,
        organization_id: UUID,
        as_of: date | None = None,
    ) -> list[ExpiryReminder]:
        """Notify contract authors whose contract ends exactly N days out.

        N ranges over ``workflow.expiry_reminder_days`` and ``as_of``
        defaults to the clock's current UTC date.  A reminder that fails to
        deliver is logged and skipped.
        """
        as_of = as_of or self._clock.today()
        reminders: list[ExpiryReminder] = []
        for days in self._config.workflow.expiry_reminder_days:
            target = as_of + timedelta(days=days)
            models = self._session.execute(
                select(ContractModel)
                .where(
                    ContractModel.organization_id == organization_id,
                    ContractModel.status == ContractStatus.ACTIVE.value,
                    ContractModel.end_date == target,
                )
                .order_by(ContractModel.reference)
            ).scalars().all()
            for model in models:
                delivered = send_notification(
                    self._session,
                    self._notification_sink,
                    WorkflowNotification(
                        event="contract_expiring",
                        organization_id=model.organization_id,
                        contract_id=model.id,
                        contract_reference=model.reference,
                        actor_id=model.created_by_user_id,
                        from_status=model.status,
                        to_status=model.status,
                        recipient_user_id=model.created_by_user_id,
                        days_remaining=days,
                    ),
                )
                if delivered:
                    reminders.append(ExpiryReminder(model.to_dto(), days))
        logger.info(
            "expiry_reminders_sent",
            extra={"as_of": as_of.isoformat(), "reminder_count": len(reminders)},
        )
        return reminders

    def expire_due_contracts(
        self,
        as_of: date,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        limit: int = 100,
    ) -> list[Contract]:
        """Expire ACTIVE contracts whose end date is before ``as_of``.

        Processes at most ``limit`` contracts per call.  Each contract is
        expired in its own savepoint; one that fails (for example because it
        was terminated concurrently) is logged and skipped.
        """
        held = frozenset(permissions)
        due_ids = self._session.execute(
            select(ContractModel.id)
            .where(
                ContractModel.organization_id == organization_id,
                ContractModel.status == ContractStatus.ACTIVE.value,
                ContractModel.end_date < as_of,
            )
            .order_by(ContractModel.end_date, ContractModel.id)
            .limit(limit)
        ).scalars().all()

        expired: list[Contract] = []
        for contract_id in due_ids:
            try:
                expired.append(self.expire(contract_id, actor_id, organization_id, held))
            except ForbiddenError:
                raise
            except ClmKernelError as exc:
                logger.warning(
                    "contract_expiry_failed",
                    extra={
                        "contract_id": str(contract_id),
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
        logger.info(
            "expiry_sweep_completed",
            extra={
                "as_of": as_of.isoformat(),
                "due_count": len(due_ids),
                "expired_count": len(expired),
            },
        )
        return expired

    # =====================================================================
    # Execution
    # =====================================================================

    def _execute(
        self,
        action: WorkflowAction,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: Iterable[str],
        *,
        comment: str | None = None,
        expected_status: ContractStatus | None = None,
        escalated_to_user_id: UUID | None = None,
    ) -> _Applied:
        held = frozenset(permissions)

        with LogContext.bind(
            organization_id=organization_id,
            contract_id=contract_id,
            actor_id=actor_id,
        ):
            try:
                with self._session.begin_nested():
                    applied = self._apply(
                        action, contract_id, actor_id, organization_id, held,
                        comment=comment,
                        expected_status=expected_status,
                        escalated_to_user_id=escalated_to_user_id,
                    )
            except StaleDataError as exc:
                logger.warning(
                    "approval_conflict",
                    extra={"action": action.value, "contract_id": str(contract_id)},
                )
                raise ApprovalConflictError(
                    str(contract_id), "modified by a concurrent transaction",
                ) from exc
            except IntegrityError as exc:
                logger.warning(
                    "approval_conflict",
                    extra={"action": action.value, "contract_id": str(contract_id)},
                )
                raise ApprovalConflictError(
                    str(contract_id), "an open approval record already exists",
                ) from exc

            self._after_transition(applied, actor_id, comment)
        return applied

    def _apply(
        self,
        action: WorkflowAction,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        permissions: frozenset[str],
        *,
        comment: str | None,
        expected_status: ContractStatus | None,
        escalated_to_user_id: UUID | None,
    ) -> _Applied:
        contract = load_contract(self._session, contract_id, organization_id, for_update=True)
        from_status = contract.status_enum

        if expected_status is not None and from_status != expected_status:
            raise ApprovalConflictError(
                str(contract_id),
                f"expected status {expected_status.value}, found {from_status.value}",
            )

        transition = find_transition(from_status, action)
        record = None
        if transition is not None and transition.approval_type is not None:
            record = self._open_record(contract.id, transition.approval_type)

        outcome = next_status(
            from_status,
            action,
            permissions,
            approval_type=ApprovalType(record.approval_type) if record else None,
            record_status=ApprovalRecordStatus(record.status) if record else None,
            finance_required=self._config.workflow.finance_approval_required,
            actor_id=actor_id,
            escalated_to_user_id=record.escalated_to_user_id if record else None,
        )
        if not outcome.allowed:
            self._raise_rejection(outcome, contract_id, actor_id)

        if outcome.requires_comment and not (comment and comment.strip()):
            raise CommentRequiredError(action.value)

        now = self._clock.now()
        if record is not None:
            self._move_record(
                record, action, outcome.record_status, actor_id, now,
                comment=comment, escalated_to_user_id=escalated_to_user_id,
            )

        if outcome.new_status != from_status:
            contract.authorize_status_change(outcome.new_status)
            column = _STATUS_TIMESTAMP.get(outcome.new_status)
            if column is not None:
                setattr(contract, column, now)
        contract.updated_at = now

        # The status token must not outlive a failed flush.
        try:
            opened = None
            if outcome.opens_approval is not None:
                opened = self._open_phase(contract, outcome.opens_approval, now)
            self._session.flush()
        except Exception:
            contract.revoke_status_authorization()
            raise

        return _Applied(contract=contract, record=record, opened=opened, outcome=outcome)

    def _open_record(
        self,
        contract_id: UUID,
        approval_type: ApprovalType,
    ) -> ApprovalRecordModel | None:
        return self._session.execute(
            select(ApprovalRecordModel)
            .where(
                ApprovalRecordModel.contract_id == contract_id,
                ApprovalRecordModel.approval_type == approval_type.value,
                ApprovalRecordModel.status.in_([s.value for s in OPEN_RECORD_STATUSES]),
            )
            .order_by(ApprovalRecordModel.created_at.desc())
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().first()

    def _open_phase(
        self,
        contract: ContractModel,
        approval_type: ApprovalType,
        now,
    ) -> ApprovalRecordModel:
        if self._open_record(contract.id, approval_type) is not None:
            raise ApprovalConflictError(
                str(contract.id),
                f"an open {approval_type.value} approval record already exists",
            )
        record = ApprovalRecordModel(
            contract_id=contract.id,
            organization_id=contract.organization_id,
            approval_type=approval_type.value,
            status=ApprovalRecordStatus.PENDING.value,
            assigned_role=INITIAL_ROLE[approval_type].value,
            created_at=now,
        )
        self._session.add(record)
        return record

    @staticmethod
    def _move_record(
        record: ApprovalRecordModel,
        action: WorkflowAction,
        new_status: ApprovalRecordStatus,
        actor_id: UUID,
        now,
        *,
        comment: str | None,
        escalated_to_user_id: UUID | None,
    ) -> None:
        record.status = new_status.value

        if action == WorkflowAction.ESCALATE:
            record.assigned_role = ApproverRole.ESCALATION_TARGET.value
            record.escalated_to_user_id = escalated_to_user_id
            record.escalated_by_user_id = actor_id
            record.escalated_at = now
            if comment:
                record.comment = comment
        elif action == WorkflowAction.ESCALATE_TO_LEGAL_HEAD:
            record.assigned_role = ApproverRole.LEGAL_HEAD.value
            record.escalated_to_user_id = escalated_to_user_id
            record.escalated_by_user_id = actor_id
            record.escalated_at = now
            if comment:
                record.comment = comment
        elif action == WorkflowAction.RETURN_TO_MANAGER:
            record.assigned_role = ApproverRole.LEGAL_MANAGER.value
            record.escalated_to_user_id = None
            record.comment = comment
        else:
            record.acted_by_user_id = actor_id
            record.acted_at = now
            record.comment = comment

    @staticmethod
    def _raise_rejection(
        outcome: TransitionOutcome,
        contract_id: UUID,
        actor_id: UUID,
    ) -> None:
        logger.info(
            "workflow_action_rejected",
            extra={
                "action": outcome.action.value,
                "from_status": outcome.from_status.value,
                "rejection": outcome.rejection.value if outcome.rejection else None,
                "reason": outcome.reason,
            },
        )
        if outcome.rejection == RejectionKind.FORBIDDEN:
            raise ForbiddenError(
                outcome.action.value,
                outcome.required_permission or "",
                str(actor_id),
            )
        if outcome.rejection == RejectionKind.NO_PENDING_APPROVAL:
            raise NoPendingApprovalError(
                str(contract_id),
                outcome.approval_type.value if outcome.approval_type else None,
            )
        raise InvalidTransitionError(
            outcome.from_status.value,
            outcome.action.value,
            outcome.allowed_actions,
            outcome.reason,
        )

    # =====================================================================
    # Side effects
    # =====================================================================

    def _after_transition(
        self,
        applied: _Applied,
        actor_id: UUID,
        comment: str | None,
    ) -> None:
        contract = applied.contract
        outcome = applied.outcome
        audit_action = _AUDIT_ACTION[outcome.action]
        acted = applied.record or applied.opened

        metadata: dict[str, str] = {"workflow_action": outcome.action.value}
        if acted is not None:
            metadata["approval_type"] = acted.approval_type
            metadata["record_status"] = acted.status
            metadata["assigned_role"] = acted.assigned_role
            if acted.escalated_to_user_id is not None:
                metadata["escalated_to_user_id"] = str(acted.escalated_to_user_id)
        if comment:
            metadata["comment"] = comment

        logger.info(
            audit_action.value,
            extra={
                "contract_id": str(contract.id),
                "from_status": outcome.from_status.value,
                "to_status": outcome.new_status.value,
                **{k: v for k, v in metadata.items() if k != "comment"},
            },
        )

        emit_audit(
            self._session,
            self._audit_sink,
            AuditRecord(
                organization_id=contract.organization_id,
                user_id=actor_id,
                action=audit_action,
                target_type="ApprovalRecord" if applied.record is not None else "Contract",
                target_id=applied.record.id if applied.record is not None else contract.id,
                contract_id=contract.id,
                old_value=outcome.from_status.value,
                new_value=outcome.new_status.value,
                metadata=metadata,
            ),
        )

        role, user_id = self._recipient(applied)
        send_notification(
            self._session,
            self._notification_sink,
            WorkflowNotification(
                event=audit_action.value,
                organization_id=contract.organization_id,
                contract_id=contract.id,
                contract_reference=contract.reference,
                actor_id=actor_id,
                from_status=outcome.from_status.value,
                to_status=outcome.new_status.value,
                recipient_role=role,
                recipient_user_id=user_id,
                comment=comment,
            ),
        )

    @staticmethod
    def _recipient(applied: _Applied) -> tuple[str | None, UUID | None]:
        """Who acts next: the assignee of an open record, else the author."""
        if applied.opened is not None:
            return applied.opened.assigned_role, None
        record = applied.record
        if record is not None and record.status in {s.value for s in OPEN_RECORD_STATUSES}:
            return record.assigned_role, record.escalated_to_user_id
        return None, applied.contract.created_by_user_id
