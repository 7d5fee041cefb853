"""
Tests for Approval Domain Types (``clm_kernel.domain.approval``).

Covers the approval record sub-machine, the "who may act" mapping and the
frozen record DTO.

Invariants tested:
- RECORD_TRANSITIONS defines the only valid record moves; terminal statuses
  have no outgoing edges.
- Escalation to a named user restricts who may act to that user.
- Frozen (immutable) guarantee on DTOs.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from clm_kernel.domain.approval import (
    OPEN_RECORD_STATUSES,
    RECORD_TRANSITIONS,
    ApprovalRecord,
    ApprovalRecordStatus,
    ApprovalType,
    ApproverRole,
    Permission,
    can_move_record,
    who_may_act,
)
from clm_kernel.domain.contract import ContractStatus


class TestRecordTransitions:
    """The ApprovalRecord sub-machine."""

    def test_every_status_has_an_entry(self):
        assert set(RECORD_TRANSITIONS) == set(ApprovalRecordStatus)

    @pytest.mark.parametrize("status", [
        ApprovalRecordStatus.APPROVED,
        ApprovalRecordStatus.REJECTED,
        ApprovalRecordStatus.REVISION_REQUESTED,
    ])
    def test_decided_statuses_are_terminal(self, status):
        assert RECORD_TRANSITIONS[status] == frozenset()
        for target in ApprovalRecordStatus:
            assert not can_move_record(status, target)

    def test_pending_can_be_decided_or_escalated(self):
        assert RECORD_TRANSITIONS[ApprovalRecordStatus.PENDING] == {
            ApprovalRecordStatus.APPROVED,
            ApprovalRecordStatus.REJECTED,
            ApprovalRecordStatus.REVISION_REQUESTED,
            ApprovalRecordStatus.ESCALATED,
        }

    def test_pending_cannot_return_to_pending(self):
        """return-to-manager is only meaningful for an escalated record."""
        assert not can_move_record(ApprovalRecordStatus.PENDING, ApprovalRecordStatus.PENDING)

    def test_escalated_can_be_returned_or_re_escalated(self):
        assert can_move_record(ApprovalRecordStatus.ESCALATED, ApprovalRecordStatus.PENDING)
        assert can_move_record(ApprovalRecordStatus.ESCALATED, ApprovalRecordStatus.ESCALATED)

    def test_open_statuses(self):
        assert OPEN_RECORD_STATUSES == {
            ApprovalRecordStatus.PENDING,
            ApprovalRecordStatus.ESCALATED,
        }


class TestWhoMayAct:
    """The (contract status, record status) -> authority mapping."""

    def test_pending_legal_record_goes_to_legal_manager(self):
        authority = who_may_act(ContractStatus.PENDING_LEGAL, ApprovalRecordStatus.PENDING)
        assert authority.role == ApproverRole.LEGAL_MANAGER
        assert authority.permission == Permission.LEGAL_ACT
        assert authority.user_id is None

    def test_escalated_to_named_user(self):
        target = uuid4()
        authority = who_may_act(
            ContractStatus.PENDING_LEGAL, ApprovalRecordStatus.ESCALATED, target,
        )
        assert authority.role == ApproverRole.ESCALATION_TARGET
        assert authority.user_id == target

    def test_escalated_without_target_goes_to_any_legal_head(self):
        authority = who_may_act(ContractStatus.PENDING_LEGAL, ApprovalRecordStatus.ESCALATED)
        assert authority.role == ApproverRole.LEGAL_HEAD
        assert authority.user_id is None

    @pytest.mark.parametrize("record_status", sorted(OPEN_RECORD_STATUSES, key=lambda s: s.value))
    def test_finance_phase_goes_to_finance_approver(self, record_status):
        authority = who_may_act(ContractStatus.PENDING_FINANCE, record_status)
        assert authority.role == ApproverRole.FINANCE_APPROVER
        assert authority.permission == Permission.FINANCE_ACT

    def test_nobody_acts_on_a_decided_record(self):
        assert who_may_act(ContractStatus.PENDING_LEGAL, ApprovalRecordStatus.APPROVED) is None

    def test_nobody_acts_outside_approval_phases(self):
        for status in (ContractStatus.DRAFT, ContractStatus.APPROVED, ContractStatus.ACTIVE):
            assert who_may_act(status, ApprovalRecordStatus.PENDING) is None

    def test_permits_checks_permission_and_named_user(self):
        target = uuid4()
        authority = who_may_act(
            ContractStatus.PENDING_LEGAL, ApprovalRecordStatus.ESCALATED, target,
        )
        held = frozenset({Permission.LEGAL_ACT})
        assert authority.permits(target, held)
        assert not authority.permits(uuid4(), held)
        assert not authority.permits(target, frozenset())


class TestApprovalRecord:
    def _record(self, status=ApprovalRecordStatus.PENDING):
        return ApprovalRecord(
            id=uuid4(),
            contract_id=uuid4(),
            organization_id=uuid4(),
            approval_type=ApprovalType.LEGAL,
            status=status,
            assigned_role=ApproverRole.LEGAL_MANAGER,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def test_is_open(self):
        assert self._record().is_open
        assert self._record(ApprovalRecordStatus.ESCALATED).is_open
        assert not self._record(ApprovalRecordStatus.APPROVED).is_open

    def test_frozen(self):
        record = self._record()
        with pytest.raises(FrozenInstanceError):
            record.status = ApprovalRecordStatus.APPROVED
