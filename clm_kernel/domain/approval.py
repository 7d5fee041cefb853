"""
Approval domain types (``clm_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for contract approval records: approval types, the
ApprovalRecord lifecycle (including escalation), approver roles, the
permission vocabulary, and the "who may act" mapping.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* ``RECORD_TRANSITIONS`` defines the only valid record status moves.
  Terminal statuses have no outgoing edges.
* At most one *open* (PENDING or ESCALATED) record per contract and
  approval type.  Checked by the workflow service inside its transaction
  and backed by a partial unique index.
* Escalation never changes ``Contract.status``; it is modelled entirely on
  the record (status, assigned role, escalation target).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from clm_kernel.domain.contract import ContractStatus


class ApprovalType(str, Enum):
    """Approval phases a contract passes through."""

    LEGAL = "LEGAL"
    FINANCE = "FINANCE"


class ApprovalRecordStatus(str, Enum):
    """ApprovalRecord lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ESCALATED = "ESCALATED"


OPEN_RECORD_STATUSES: frozenset[ApprovalRecordStatus] = frozenset({
    ApprovalRecordStatus.PENDING,
    ApprovalRecordStatus.ESCALATED,
})

RECORD_TRANSITIONS: dict[ApprovalRecordStatus, frozenset[ApprovalRecordStatus]] = {
    ApprovalRecordStatus.PENDING: frozenset({
        ApprovalRecordStatus.APPROVED,
        ApprovalRecordStatus.REJECTED,
        ApprovalRecordStatus.REVISION_REQUESTED,
        ApprovalRecordStatus.ESCALATED,
    }),
    ApprovalRecordStatus.ESCALATED: frozenset({
        ApprovalRecordStatus.APPROVED,
        ApprovalRecordStatus.REJECTED,
        ApprovalRecordStatus.REVISION_REQUESTED,
        # re-escalation to the Legal Head, or a new target
        ApprovalRecordStatus.ESCALATED,
        # returned to the legal manager
        ApprovalRecordStatus.PENDING,
    }),
    ApprovalRecordStatus.APPROVED: frozenset(),
    ApprovalRecordStatus.REJECTED: frozenset(),
    ApprovalRecordStatus.REVISION_REQUESTED: frozenset(),
}


def can_move_record(
    current: ApprovalRecordStatus,
    target: ApprovalRecordStatus,
) -> bool:
    """True when the record sub-machine permits ``current -> target``."""
    return target in RECORD_TRANSITIONS.get(current, frozenset())


class ApproverRole(str, Enum):
    """Who an approval record is currently assigned to."""

    LEGAL_MANAGER = "LEGAL_MANAGER"
    LEGAL_HEAD = "LEGAL_HEAD"
    FINANCE_APPROVER = "FINANCE_APPROVER"
    ESCALATION_TARGET = "ESCALATION_TARGET"


INITIAL_ROLE: dict[ApprovalType, ApproverRole] = {
    ApprovalType.LEGAL: ApproverRole.LEGAL_MANAGER,
    ApprovalType.FINANCE: ApproverRole.FINANCE_APPROVER,
}


class Permission:
    """Permission strings checked by the state machine guard."""

    CONTRACT_SUBMIT = "contract:submit"
    CONTRACT_ESCALATE = "contract:escalate"
    CONTRACT_SEND = "contract:send_counterparty"
    CONTRACT_UPLOAD_SIGNED = "contract:upload_signed"
    CONTRACT_ACTIVATE = "contract:activate"
    CONTRACT_TERMINATE = "contract:terminate"
    CONTRACT_EXPIRE = "contract:expire"
    LEGAL_ACT = "approval:legal:act"
    LEGAL_ESCALATE = "approval:legal:escalate"
    FINANCE_ACT = "approval:finance:act"


ACT_PERMISSION: dict[ApprovalType, str] = {
    ApprovalType.LEGAL: Permission.LEGAL_ACT,
    ApprovalType.FINANCE: Permission.FINANCE_ACT,
}


# =========================================================================
# Who may act
# =========================================================================


@dataclass(frozen=True)
class ActingAuthority:
    """The actor entitled to decide an open record.

    ``user_id`` is set only when the record was escalated to a named
    person; otherwise any holder of ``permission`` in ``role`` may act.
    """

    role: ApproverRole
    permission: str
    user_id: UUID | None = None

    def permits(self, actor_id: UUID, permissions: frozenset[str]) -> bool:
        if self.permission not in permissions:
            return False
        return self.user_id is None or self.user_id == actor_id


def who_may_act(
    contract_status: ContractStatus,
    record_status: ApprovalRecordStatus,
    escalated_to_user_id: UUID | None = None,
) -> ActingAuthority | None:
    """Map (contract status, record status) to the authority that may act.

    Returns None when nobody may act on a record in that combination.
    """
    if contract_status == ContractStatus.PENDING_LEGAL:
        if record_status == ApprovalRecordStatus.PENDING:
            return ActingAuthority(ApproverRole.LEGAL_MANAGER, Permission.LEGAL_ACT)
        if record_status == ApprovalRecordStatus.ESCALATED:
            if escalated_to_user_id is not None:
                return ActingAuthority(
                    ApproverRole.ESCALATION_TARGET,
                    Permission.LEGAL_ACT,
                    escalated_to_user_id,
                )
            return ActingAuthority(ApproverRole.LEGAL_HEAD, Permission.LEGAL_ACT)
        return None
    if contract_status == ContractStatus.PENDING_FINANCE:
        if record_status in OPEN_RECORD_STATUSES:
            return ActingAuthority(
                ApproverRole.FINANCE_APPROVER,
                Permission.FINANCE_ACT,
                escalated_to_user_id if record_status == ApprovalRecordStatus.ESCALATED else None,
            )
    return None


# =========================================================================
# Record DTO
# =========================================================================


@dataclass(frozen=True)
class ApprovalRecord:
    """Immutable snapshot of an approval record."""

    id: UUID
    contract_id: UUID
    organization_id: UUID
    approval_type: ApprovalType
    status: ApprovalRecordStatus
    assigned_role: ApproverRole
    created_at: datetime
    acted_by_user_id: UUID | None = None
    acted_at: datetime | None = None
    comment: str | None = None
    escalated_to_user_id: UUID | None = None
    escalated_by_user_id: UUID | None = None
    escalated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_RECORD_STATUSES
