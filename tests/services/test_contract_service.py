"""
Tests for ContractService -- contract creation and draft editing.

Tests cover:
1. Creation: DRAFT status, reference format, version 1, audit
2. Editing: versioning of edits, no-op edits, DRAFT-only rule
3. Field validation: unknown fields, empty title, bad values
4. Reads: get and list, tenant scoping
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from clm_config.schema import EngineConfig, WorkflowSettings
from clm_kernel.domain.contract import ContractStatus
from clm_kernel.exceptions import (
    ContractNotEditableError,
    ContractNotFoundError,
    VersionConflictError,
)
from clm_kernel.models.audit_event import AuditAction
from clm_kernel.services.audit_service import AuditService
from clm_services.contract_service import ContractService, generate_reference

REFERENCE = re.compile(r"^[A-Z0-9]+-\d{4}-[A-Z0-9]{6}$")


# ============================================================================
# Creation
# ============================================================================


class TestCreate:
    def test_created_in_draft(self, draft_contract, author_id):
        assert draft_contract.status == ContractStatus.DRAFT
        assert draft_contract.created_by_user_id == author_id
        assert draft_contract.amount == Decimal("120000.00")
        assert draft_contract.start_date == date(2024, 2, 1)
        assert draft_contract.field_data == {"payment_terms": "Net 30"}

    def test_reference_defaults_to_organization_prefix(self, draft_contract, org_id):
        assert REFERENCE.match(draft_contract.reference)
        assert draft_contract.reference.startswith(str(org_id)[:8].upper() + "-2401-")

    def test_configured_reference_prefix(
        self, session, deterministic_clock, org_id, author_id,
    ):
        config = EngineConfig(workflow=WorkflowSettings(reference_prefix="ACME"))
        service = ContractService(session, deterministic_clock, config)
        contract = service.create(org_id, author_id, "Reseller Agreement")
        assert contract.reference.startswith("ACME-2401-")

    def test_references_are_distinct(self, create_contract):
        references = {create_contract(title=f"NDA {i}").reference for i in range(5)}
        assert len(references) == 5

    def test_first_version_created(self, contract_service, draft_contract):
        assert contract_service.versioning.latest_sequence(draft_contract.id) == 1

    def test_empty_title_rejected(self, contract_service, org_id, author_id):
        with pytest.raises(ValueError):
            contract_service.create(org_id, author_id, "   ")

    def test_bad_amount_rejected(self, contract_service, org_id, author_id):
        with pytest.raises(ValueError):
            contract_service.create(org_id, author_id, "MSA", amount="a lot")

    def test_creation_audited(self, session, draft_contract, org_id):
        trace = AuditService(session).get_trace(org_id, draft_contract.id)
        assert [e.action for e in trace] == [
            AuditAction.VERSION_CREATED,
            AuditAction.CONTRACT_CREATED,
        ]
        assert trace[1].new_value == "DRAFT"
        assert trace[1].metadata["reference"] == draft_contract.reference


class TestGenerateReference:
    def test_format(self):
        reference = generate_reference("ACME", date(2024, 3, 9))
        assert reference.startswith("ACME-2403-")
        assert REFERENCE.match(reference)


# ============================================================================
# Editing
# ============================================================================


class TestUpdate:
    def test_edit_creates_version(self, contract_service, draft_contract, author_id, org_id):
        contract, version = contract_service.update(
            draft_contract.id, author_id, org_id,
            {"amount": "135000", "end_date": "2025-06-30"},
            expected_sequence=1,
        )

        assert contract.amount == Decimal("135000")
        assert contract.end_date == date(2025, 6, 30)
        assert version.sequence == 2

    def test_noop_edit_creates_no_version(
        self, session, contract_service, draft_contract, author_id, org_id,
    ):
        contract, version = contract_service.update(
            draft_contract.id, author_id, org_id, {"title": "Master Services Agreement"},
        )
        assert version is None
        assert contract_service.versioning.latest_sequence(draft_contract.id) == 1

        actions = [e.action for e in AuditService(session).get_trace(org_id, draft_contract.id)]
        assert AuditAction.CONTRACT_UPDATED not in actions

    def test_field_data_replaced_whole(self, contract_service, draft_contract, author_id, org_id):
        contract, version = contract_service.update(
            draft_contract.id, author_id, org_id,
            {"field_data": {"governing_law": "Delaware"}},
        )
        assert contract.field_data == {"governing_law": "Delaware"}

        changelog = contract_service.versioning.get_changelog(contract.id, version.id, org_id)
        assert {fc.field for fc in changelog.field_changes} == {"governing_law", "payment_terms"}

    def test_stale_sequence_rolls_back_edit(
        self, contract_service, draft_contract, author_id, org_id,
    ):
        with pytest.raises(VersionConflictError):
            contract_service.update(
                draft_contract.id, author_id, org_id,
                {"title": "Renamed"}, expected_sequence=0,
            )
        assert contract_service.get(draft_contract.id, org_id).title == "Master Services Agreement"

    def test_only_draft_is_editable(
        self, contract_service, pending_legal_contract, author_id, org_id,
    ):
        with pytest.raises(ContractNotEditableError) as exc_info:
            contract_service.update(
                pending_legal_contract.id, author_id, org_id, {"title": "Sneaky edit"},
            )
        assert exc_info.value.status == "PENDING_LEGAL"

    def test_unknown_field_rejected(self, contract_service, draft_contract, author_id, org_id):
        with pytest.raises(ValueError, match="status"):
            contract_service.update(
                draft_contract.id, author_id, org_id, {"status": "APPROVED"},
            )

    def test_empty_title_rejected(self, contract_service, draft_contract, author_id, org_id):
        with pytest.raises(ValueError):
            contract_service.update(draft_contract.id, author_id, org_id, {"title": ""})


# ============================================================================
# Reads
# ============================================================================


class TestReads:
    def test_get_is_tenant_scoped(self, contract_service, draft_contract):
        with pytest.raises(ContractNotFoundError):
            contract_service.get(draft_contract.id, uuid4())

    def test_list_filters_by_status(
        self, contract_service, create_contract, pending_legal_contract, org_id,
    ):
        create_contract(title="Second draft")

        drafts = contract_service.list_contracts(org_id, status=ContractStatus.DRAFT)
        pending = contract_service.list_contracts(org_id, status=ContractStatus.PENDING_LEGAL)

        assert [c.title for c in drafts] == ["Second draft"]
        assert [c.id for c in pending] == [pending_legal_contract.id]

    def test_list_newest_first_and_paged(self, contract_service, create_contract, org_id):
        for title in ("One", "Two", "Three"):
            create_contract(title=title)

        page = contract_service.list_contracts(org_id, limit=2)
        assert [c.title for c in page] == ["Three", "Two"]
        assert [c.title for c in contract_service.list_contracts(org_id, offset=2)] == ["One"]

    def test_list_by_author(self, contract_service, create_contract, org_id):
        someone = uuid4()
        create_contract(title="Mine", actor_id=someone)
        create_contract(title="Theirs")
        titles = [c.title for c in contract_service.list_contracts(org_id, created_by_user_id=someone)]
        assert titles == ["Mine"]
