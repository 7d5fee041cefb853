"""
Contract workflow definition (``clm_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing the contract approval state machine:
``Guard``, ``Transition`` and ``Workflow``, plus ``CONTRACT_WORKFLOW``,
the one fixed graph the state machine engine evaluates.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* Each ``(from_state, action)`` pair appears at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from clm_kernel.domain.approval import ApprovalRecordStatus, ApprovalType, Permission
from clm_kernel.domain.contract import ContractStatus, TERMINAL_CONTRACT_STATUSES


class WorkflowAction(str, Enum):
    """Actions an actor may request against a contract."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"
    ESCALATE = "escalate"
    ESCALATE_TO_LEGAL_HEAD = "escalate_to_legal_head"
    RETURN_TO_MANAGER = "return_to_manager"
    SEND = "send"
    UPLOAD_SIGNED = "upload_signed"
    ACTIVATE = "activate"
    TERMINATE = "terminate"
    EXPIRE = "expire"


@dataclass(frozen=True)
class Guard:
    """A permission that must be held before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the state machine does.
    """
    permission: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in the contract workflow.

    ``approval_type`` names the open ApprovalRecord the transition acts on
    and ``record_status`` the status that record moves to.
    ``to_state_without_finance`` replaces ``to_state`` when the finance
    phase is disabled.
    """
    from_state: ContractStatus
    to_state: ContractStatus
    action: WorkflowAction
    guard: Guard
    approval_type: ApprovalType | None = None
    record_status: ApprovalRecordStatus | None = None
    requires_comment: bool = False
    to_state_without_finance: ContractStatus | None = None

    @property
    def changes_status(self) -> bool:
        return self.from_state != self.to_state


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """
    name: str
    description: str
    initial_state: ContractStatus
    states: tuple[ContractStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[ContractStatus, ...] = ()


# Approval phase opened on entry to each pending status
PHASE_APPROVAL_TYPE: dict[ContractStatus, ApprovalType] = {
    ContractStatus.PENDING_LEGAL: ApprovalType.LEGAL,
    ContractStatus.PENDING_FINANCE: ApprovalType.FINANCE,
}


_SUBMIT = Guard(Permission.CONTRACT_SUBMIT, "Author may submit for legal review")
_LEGAL_ACT = Guard(Permission.LEGAL_ACT, "Legal approver decides the legal phase")
_FINANCE_ACT = Guard(Permission.FINANCE_ACT, "Finance approver decides the finance phase")
_LEGAL_ESCALATE = Guard(Permission.LEGAL_ESCALATE, "Legal approver may escalate to a named user")
_ESCALATE_HEAD = Guard(Permission.CONTRACT_ESCALATE, "Escalate legal review to the Legal Head")
_SEND = Guard(Permission.CONTRACT_SEND, "Send approved contract to the counterparty")
_UPLOAD = Guard(Permission.CONTRACT_UPLOAD_SIGNED, "Record the countersigned copy")
_ACTIVATE = Guard(Permission.CONTRACT_ACTIVATE, "Activate a countersigned contract")
_TERMINATE = Guard(Permission.CONTRACT_TERMINATE, "Terminate an active contract")
_EXPIRE = Guard(Permission.CONTRACT_EXPIRE, "Expire an active contract")

_S = ContractStatus
_A = WorkflowAction
_R = ApprovalRecordStatus
_T = ApprovalType


CONTRACT_WORKFLOW = Workflow(
    name="contract_approval",
    description="Legal and finance approval, signature and post-signature lifecycle",
    initial_state=_S.DRAFT,
    states=tuple(ContractStatus),
    transitions=(
        Transition(_S.DRAFT, _S.PENDING_LEGAL, _A.SUBMIT, _SUBMIT),
        # Legal phase
        Transition(
            _S.PENDING_LEGAL, _S.PENDING_FINANCE, _A.APPROVE, _LEGAL_ACT,
            approval_type=_T.LEGAL, record_status=_R.APPROVED,
            to_state_without_finance=_S.APPROVED,
        ),
        Transition(
            _S.PENDING_LEGAL, _S.REJECTED, _A.REJECT, _LEGAL_ACT,
            approval_type=_T.LEGAL, record_status=_R.REJECTED,
            requires_comment=True,
        ),
        Transition(
            _S.PENDING_LEGAL, _S.DRAFT, _A.REQUEST_REVISION, _LEGAL_ACT,
            approval_type=_T.LEGAL, record_status=_R.REVISION_REQUESTED,
            requires_comment=True,
        ),
        Transition(
            _S.PENDING_LEGAL, _S.PENDING_LEGAL, _A.ESCALATE, _LEGAL_ESCALATE,
            approval_type=_T.LEGAL, record_status=_R.ESCALATED,
        ),
        Transition(
            _S.PENDING_LEGAL, _S.PENDING_LEGAL, _A.ESCALATE_TO_LEGAL_HEAD, _ESCALATE_HEAD,
            approval_type=_T.LEGAL, record_status=_R.ESCALATED,
        ),
        Transition(
            _S.PENDING_LEGAL, _S.PENDING_LEGAL, _A.RETURN_TO_MANAGER, _LEGAL_ACT,
            approval_type=_T.LEGAL, record_status=_R.PENDING,
            requires_comment=True,
        ),
        # Finance phase
        Transition(
            _S.PENDING_FINANCE, _S.APPROVED, _A.APPROVE, _FINANCE_ACT,
            approval_type=_T.FINANCE, record_status=_R.APPROVED,
        ),
        Transition(
            _S.PENDING_FINANCE, _S.REJECTED, _A.REJECT, _FINANCE_ACT,
            approval_type=_T.FINANCE, record_status=_R.REJECTED,
            requires_comment=True,
        ),
        Transition(
            _S.PENDING_FINANCE, _S.DRAFT, _A.REQUEST_REVISION, _FINANCE_ACT,
            approval_type=_T.FINANCE, record_status=_R.REVISION_REQUESTED,
            requires_comment=True,
        ),
        # Signature and post-signature
        Transition(_S.APPROVED, _S.SENT_TO_COUNTERPARTY, _A.SEND, _SEND),
        Transition(_S.SENT_TO_COUNTERPARTY, _S.COUNTERSIGNED, _A.UPLOAD_SIGNED, _UPLOAD),
        Transition(_S.COUNTERSIGNED, _S.ACTIVE, _A.ACTIVATE, _ACTIVATE),
        Transition(_S.ACTIVE, _S.TERMINATED, _A.TERMINATE, _TERMINATE),
        Transition(_S.ACTIVE, _S.EXPIRED, _A.EXPIRE, _EXPIRE),
    ),
    terminal_states=tuple(sorted(TERMINAL_CONTRACT_STATUSES, key=lambda s: s.value)),
)
