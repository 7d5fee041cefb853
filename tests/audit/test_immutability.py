"""
Append-only persistence and tamper detection.

Verifies:
- ContractVersion, ChangeLogEntry and AuditEvent reject UPDATE and DELETE
- Contracts are never deleted, are born in DRAFT, and change status only
  through the approval workflow
- A snapshot edited behind the ORM's back fails hash verification on read
- Edits to historical audit events break the hash chain
"""

from contextlib import contextmanager

import pytest
from sqlalchemy import select, update

from clm_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from clm_kernel.domain.contract import ContractStatus
from clm_kernel.exceptions import (
    AuditChainBrokenError,
    ImmutabilityViolationError,
    SnapshotTamperedError,
)
from clm_kernel.models.audit_event import AuditEvent
from clm_kernel.models.contract import ContractModel
from clm_kernel.models.version import ChangeLogEntryModel, ContractVersionModel
from clm_kernel.services.audit_service import AuditService
from clm_kernel.services.version_store import VersionStore


@contextmanager
def disabled_immutability():
    """Disable ORM immutability enforcement to simulate tampering."""
    unregister_immutability_listeners()
    try:
        yield
    finally:
        register_immutability_listeners()


def first(session, model, contract_id):
    return session.execute(
        select(model).where(model.contract_id == contract_id)
    ).scalars().first()


class TestVersionImmutability:
    def test_version_update_blocked(self, session, draft_contract):
        version = first(session, ContractVersionModel, draft_contract.id)
        version.annexure_data = "rewritten history"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ContractVersion"

    def test_version_delete_blocked(self, session, draft_contract):
        session.delete(first(session, ContractVersionModel, draft_contract.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_changelog_update_blocked(self, session, draft_contract):
        entry = first(session, ChangeLogEntryModel, draft_contract.id)
        entry.summary = "Nothing to see here"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_changelog_delete_blocked(self, session, draft_contract):
        session.delete(first(session, ChangeLogEntryModel, draft_contract.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAuditImmutability:
    def test_audit_update_blocked(self, session, draft_contract):
        event = first(session, AuditEvent, draft_contract.id)
        event.new_value = "APPROVED"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_delete_blocked(self, session, draft_contract):
        session.delete(first(session, AuditEvent, draft_contract.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestContractRules:
    def test_contract_delete_blocked(self, session, draft_contract):
        session.delete(session.get(ContractModel, draft_contract.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_direct_status_write_blocked(self, session, draft_contract):
        model = session.get(ContractModel, draft_contract.id)
        model.status = ContractStatus.APPROVED.value
        with pytest.raises(ImmutabilityViolationError, match="approval workflow"):
            session.flush()

    def test_authorized_status_write_passes_once(self, session, draft_contract):
        model = session.get(ContractModel, draft_contract.id)
        model.authorize_status_change(ContractStatus.PENDING_LEGAL)
        session.flush()

        # The token is consumed by the flush
        model.status = ContractStatus.APPROVED.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_plain_field_edit_passes(self, session, draft_contract):
        model = session.get(ContractModel, draft_contract.id)
        model.description = "Edited in place"
        session.flush()

    def test_insert_outside_draft_blocked(self, session, org_id, author_id, deterministic_clock):
        session.add(ContractModel(
            organization_id=org_id,
            reference="SKIP-2401-AAAAAA",
            title="Pre-approved",
            status=ContractStatus.APPROVED.value,
            annexure_data="",
            field_data={},
            created_by_user_id=author_id,
            created_at=deterministic_clock.now(),
        ))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestTamperDetection:
    def test_tampered_snapshot_fails_verification(self, session, draft_contract):
        version = first(session, ContractVersionModel, draft_contract.id)
        with disabled_immutability():
            version.annexure_data = "1. Scope\n2. No fees at all"
            session.flush()
        session.expire_all()

        with pytest.raises(SnapshotTamperedError) as exc_info:
            VersionStore(session).latest(draft_contract.id)
        assert exc_info.value.version_id == str(version.id)

    def test_bulk_sql_tamper_breaks_audit_chain(self, session, pending_legal_contract):
        auditor = AuditService(session)
        assert auditor.validate_chain()

        event = first(session, AuditEvent, pending_legal_contract.id)
        session.execute(
            update(AuditEvent.__table__)
            .where(AuditEvent.__table__.c.id == event.id)
            .values(new_value="APPROVED")
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor.validate_chain()
