"""
clm_engines.state_machine -- Pure contract approval state machine.

Responsibility:
    Decide whether a requested workflow action is legal for a contract in
    a given status, for an actor holding a given permission set, against
    the contract's open approval record.  Returns the outcome as data; the
    workflow service turns rejections into typed exceptions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import clm_kernel/domain/ types.

Invariants enforced:
    - Only transitions listed in ``CONTRACT_WORKFLOW`` are ever allowed.
    - Evaluation order is fixed:
        1. (status, action) not in the table   -> INVALID_TRANSITION
        2. guard permission missing            -> FORBIDDEN
        3. no open record of the phase's type  -> NO_PENDING_APPROVAL
        4. record sub-machine refuses the move -> INVALID_TRANSITION
    - An escalated record naming a user may only be decided by that user.
    - Escalation never changes the contract status.
    - Purity: no clock access, no I/O, no database.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable
from uuid import UUID

from clm_kernel.domain.approval import (
    ACT_PERMISSION,
    OPEN_RECORD_STATUSES,
    ApprovalRecordStatus,
    ApprovalType,
    can_move_record,
    who_may_act,
)
from clm_kernel.domain.contract import ContractStatus
from clm_kernel.domain.workflow import (
    CONTRACT_WORKFLOW,
    PHASE_APPROVAL_TYPE,
    Transition,
    Workflow,
    WorkflowAction,
)


class RejectionKind(str, Enum):
    INVALID_TRANSITION = "invalid_transition"
    FORBIDDEN = "forbidden"
    NO_PENDING_APPROVAL = "no_pending_approval"


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of evaluating one action against the state machine.

    When ``allowed`` is True, ``new_status`` is set; ``record_status`` is
    the status the acted-on record moves to (None when the action has no
    record) and ``opens_approval`` names the phase record to create.
    When ``allowed`` is False, ``rejection`` and ``reason`` explain why.
    """

    allowed: bool
    action: WorkflowAction
    from_status: ContractStatus
    new_status: ContractStatus | None = None
    approval_type: ApprovalType | None = None
    record_status: ApprovalRecordStatus | None = None
    opens_approval: ApprovalType | None = None
    requires_comment: bool = False
    rejection: RejectionKind | None = None
    reason: str = ""
    required_permission: str | None = None
    allowed_actions: tuple[str, ...] = ()


def find_transition(
    status: ContractStatus,
    action: WorkflowAction,
    workflow: Workflow = CONTRACT_WORKFLOW,
) -> Transition | None:
    for transition in workflow.transitions:
        if transition.from_state == status and transition.action == action:
            return transition
    return None


def allowed_actions(
    status: ContractStatus,
    workflow: Workflow = CONTRACT_WORKFLOW,
) -> tuple[str, ...]:
    """Actions listed for ``status``, in table order."""
    return tuple(
        t.action.value for t in workflow.transitions if t.from_state == status
    )


def available_actions(
    status: ContractStatus,
    permissions: Iterable[str],
    record_status: ApprovalRecordStatus | None = None,
    workflow: Workflow = CONTRACT_WORKFLOW,
) -> tuple[str, ...]:
    """Actions the actor could perform right now (for UI affordances)."""
    held = frozenset(permissions)
    phase = PHASE_APPROVAL_TYPE.get(status)
    result = []
    for t in workflow.transitions:
        if t.from_state != status:
            continue
        outcome = next_status(
            status,
            t.action,
            held,
            approval_type=phase if record_status is not None else None,
            record_status=record_status,
            workflow=workflow,
        )
        if outcome.allowed:
            result.append(t.action.value)
    return tuple(result)


def next_status(
    current_status: ContractStatus,
    action: WorkflowAction,
    permissions: Iterable[str],
    *,
    approval_type: ApprovalType | None = None,
    record_status: ApprovalRecordStatus | None = None,
    finance_required: bool = True,
    actor_id: UUID | None = None,
    escalated_to_user_id: UUID | None = None,
    workflow: Workflow = CONTRACT_WORKFLOW,
) -> TransitionOutcome:
    """Evaluate ``action`` from ``current_status``.

    Args:
        current_status: The contract's status.
        action: Requested action.
        permissions: Resolved permission strings of the actor.
        approval_type: Type of the open approval record found for the
            contract's current phase (None when there is none).
        record_status: Status of that record.
        finance_required: When False, legal approval goes straight to
            APPROVED.
        actor_id: The acting user; needed to honour escalation to a
            named user.
        escalated_to_user_id: Escalation target recorded on the record.
        workflow: Workflow definition (defaults to the contract workflow).

    Returns:
        TransitionOutcome describing the decision.
    """
    held = frozenset(permissions)
    transition = find_transition(current_status, action, workflow)

    # 1. Is the action legal from this status at all?
    if transition is None:
        return TransitionOutcome(
            allowed=False,
            action=action,
            from_status=current_status,
            rejection=RejectionKind.INVALID_TRANSITION,
            reason=f"'{action.value}' is not a valid action from {current_status.value}",
            allowed_actions=allowed_actions(current_status, workflow),
        )

    # 2. Guard
    if transition.guard.permission not in held:
        return TransitionOutcome(
            allowed=False,
            action=action,
            from_status=current_status,
            rejection=RejectionKind.FORBIDDEN,
            reason=f"Missing permission '{transition.guard.permission}'",
            required_permission=transition.guard.permission,
            allowed_actions=allowed_actions(current_status, workflow),
        )

    # 3. Open record of the phase's type
    if transition.approval_type is not None:
        if (
            approval_type != transition.approval_type
            or record_status not in OPEN_RECORD_STATUSES
        ):
            return TransitionOutcome(
                allowed=False,
                action=action,
                from_status=current_status,
                approval_type=transition.approval_type,
                rejection=RejectionKind.NO_PENDING_APPROVAL,
                reason=f"No open {transition.approval_type.value} approval record",
                allowed_actions=allowed_actions(current_status, workflow),
            )

        # Deciding actions honour "who may act" (escalation to a named user)
        if transition.guard.permission == ACT_PERMISSION[transition.approval_type]:
            authority = who_may_act(current_status, record_status, escalated_to_user_id)
            if (
                authority is not None
                and actor_id is not None
                and not authority.permits(actor_id, held)
            ):
                return TransitionOutcome(
                    allowed=False,
                    action=action,
                    from_status=current_status,
                    approval_type=transition.approval_type,
                    rejection=RejectionKind.FORBIDDEN,
                    reason=(
                        f"Record is assigned to {authority.role.value}"
                        + (f" user {authority.user_id}" if authority.user_id else "")
                    ),
                    required_permission=authority.permission,
                    allowed_actions=allowed_actions(current_status, workflow),
                )

        # 4. Record sub-machine
        if not can_move_record(record_status, transition.record_status):
            return TransitionOutcome(
                allowed=False,
                action=action,
                from_status=current_status,
                approval_type=transition.approval_type,
                rejection=RejectionKind.INVALID_TRANSITION,
                reason=(
                    f"Approval record cannot move from {record_status.value} "
                    f"to {transition.record_status.value}"
                ),
                allowed_actions=allowed_actions(current_status, workflow),
            )

    new_status = transition.to_state
    if not finance_required and transition.to_state_without_finance is not None:
        new_status = transition.to_state_without_finance

    opens = PHASE_APPROVAL_TYPE.get(new_status) if new_status != current_status else None

    return TransitionOutcome(
        allowed=True,
        action=action,
        from_status=current_status,
        new_status=new_status,
        approval_type=transition.approval_type,
        record_status=transition.record_status,
        opens_approval=opens,
        requires_comment=transition.requires_comment,
        required_permission=transition.guard.permission,
    )
