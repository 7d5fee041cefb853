"""
clm_services.contract_service -- Contract creation and draft editing.

Responsibility:
    Thin adapter in front of the versioning engine: creates contracts (with
    a generated reference and version 1), applies edits to DRAFT contracts
    and hands every edit to VersioningService, which decides whether a new
    version is due.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Contracts are created in DRAFT with version 1.
    - Only DRAFT contracts can be edited.
    - A field edit and the version it produces commit or roll back together.
    - References are ``<PREFIX>-<YYMM>-<6 chars>`` and unique per
      organization.

Failure modes:
    - ContractNotFoundError: unknown contract or other tenant.
    - ContractNotEditableError: edit outside DRAFT.
    - VersionConflictError: stale ``expected_sequence``.
    - ValueError: unknown field, empty title, or a value of the wrong kind.
"""

from __future__ import annotations

import secrets
import string
from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clm_config.schema import EngineConfig
from clm_kernel.domain.clock import Clock, SystemClock
from clm_kernel.domain.contract import Contract, ContractStatus, ContractVersion
from clm_kernel.domain.fields import FieldValue
from clm_kernel.exceptions import ContractNotEditableError
from clm_kernel.logging_config import LogContext, get_logger
from clm_kernel.models.audit_event import AuditAction
from clm_kernel.models.contract import ContractModel
from clm_kernel.services.audit_service import AuditRecord, AuditSink, DatabaseAuditSink
from clm_services._loading import load_contract
from clm_services._side_effects import emit_audit
from clm_services.versioning_service import VersioningService

logger = get_logger("services.contract")

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
_REFERENCE_ATTEMPTS = 5

_TEXT_COLUMNS = ("title", "counterparty_name", "counterparty_email", "description")
_DATE_COLUMNS = ("start_date", "end_date")
EDITABLE_FIELDS = frozenset(
    _TEXT_COLUMNS + _DATE_COLUMNS + ("amount", "field_data", "annexure_data")
)


def generate_reference(prefix: str, today: date) -> str:
    """``ACME-2403-K7Q2ZD`` style reference."""
    unique = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"{prefix}-{today:%y%m}-{unique}"


class ContractService:
    """
    Create, edit and read contracts.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT change contract status (ApprovalWorkflowService does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        audit_sink: AuditSink | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig()
        self._audit_sink = audit_sink or DatabaseAuditSink(session, self._clock)
        self._versioning = VersioningService(
            session, self._clock, self._config, self._audit_sink,
        )

    @property
    def versioning(self) -> VersioningService:
        return self._versioning

    def create(
        self,
        organization_id: UUID,
        actor_id: UUID,
        title: str,
        *,
        counterparty_name: str | None = None,
        counterparty_email: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        amount: Decimal | int | str | None = None,
        description: str | None = None,
        annexure_data: str = "",
        field_data: Mapping[str, Any] | None = None,
    ) -> Contract:
        """Create a DRAFT contract and its first version."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            if not title or not title.strip():
                raise ValueError("title is required")

            now = self._clock.now()
            prefix = self._config.workflow.reference_prefix or str(organization_id)[:8].upper()

            with self._session.begin_nested():
                model = None
                for attempt in range(1, _REFERENCE_ATTEMPTS + 1):
                    candidate = ContractModel(
                        organization_id=organization_id,
                        reference=generate_reference(prefix, now.date()),
                        title=title.strip(),
                        status=ContractStatus.DRAFT.value,
                        annexure_data=annexure_data or "",
                        field_data=dict(field_data or {}),
                        created_by_user_id=actor_id,
                        created_at=now,
                    )
                    self._assign(candidate, {
                        "counterparty_name": counterparty_name,
                        "counterparty_email": counterparty_email,
                        "start_date": start_date,
                        "end_date": end_date,
                        "amount": amount,
                        "description": description,
                    })
                    savepoint = self._session.begin_nested()
                    try:
                        self._session.add(candidate)
                        self._session.flush()
                        savepoint.commit()
                        model = candidate
                        break
                    except IntegrityError:
                        savepoint.rollback()
                        logger.warning(
                            "contract_reference_collision",
                            extra={"reference": candidate.reference, "attempt": attempt},
                        )
                if model is None:
                    raise RuntimeError("Could not allocate a unique contract reference")

                contract = model.to_dto()
                version = self._versioning.create_version_if_changed(
                    contract,
                    self._proposed_fields(model),
                    model.annexure_data,
                    actor_id,
                    expected_sequence=0,
                )

            emit_audit(
                self._session,
                self._audit_sink,
                AuditRecord(
                    organization_id=organization_id,
                    user_id=actor_id,
                    action=AuditAction.CONTRACT_CREATED,
                    target_type="Contract",
                    target_id=contract.id,
                    contract_id=contract.id,
                    new_value=ContractStatus.DRAFT.value,
                    metadata={"reference": contract.reference, "title": contract.title},
                ),
            )
            logger.info(
                "contract_created",
                extra={
                    "contract_id": str(contract.id),
                    "reference": contract.reference,
                    "version_sequence": version.sequence if version else None,
                },
            )
        return contract

    def update(
        self,
        contract_id: UUID,
        actor_id: UUID,
        organization_id: UUID,
        changes: Mapping[str, Any],
        expected_sequence: int | None = None,
    ) -> tuple[Contract, ContractVersion | None]:
        """
        Apply ``changes`` to a DRAFT contract and version the result.

        Args:
            changes: New values keyed by field name (see ``EDITABLE_FIELDS``).
                ``field_data`` replaces the whole extension mapping.
            expected_sequence: Latest version sequence the editor saw.

        Returns:
            The updated contract and the new version (None when the edit
            changed nothing that is versioned).
        """
        with LogContext.bind(
            organization_id=organization_id,
            contract_id=contract_id,
            actor_id=actor_id,
        ):
            unknown = set(changes) - EDITABLE_FIELDS
            if unknown:
                raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
            if "title" in changes and not (changes["title"] and str(changes["title"]).strip()):
                raise ValueError("title is required")

            with self._session.begin_nested():
                model = load_contract(self._session, contract_id, organization_id, for_update=True)
                if model.status_enum != ContractStatus.DRAFT:
                    raise ContractNotEditableError(str(contract_id), model.status)

                self._assign(model, changes)
                if "field_data" in changes:
                    model.field_data = dict(changes["field_data"] or {})
                if "annexure_data" in changes:
                    model.annexure_data = changes["annexure_data"] or ""
                model.updated_at = self._clock.now()
                self._session.flush()

                contract = model.to_dto()
                version = self._versioning.create_version_if_changed(
                    contract,
                    self._proposed_fields(model),
                    model.annexure_data,
                    actor_id,
                    expected_sequence=expected_sequence,
                )

            if version is not None:
                emit_audit(
                    self._session,
                    self._audit_sink,
                    AuditRecord(
                        organization_id=organization_id,
                        user_id=actor_id,
                        action=AuditAction.CONTRACT_UPDATED,
                        target_type="Contract",
                        target_id=contract.id,
                        contract_id=contract.id,
                        new_value=str(version.sequence),
                        metadata={"fields": sorted(set(changes))},
                    ),
                )
        return contract, version

    def get(self, contract_id: UUID, organization_id: UUID) -> Contract:
        return load_contract(self._session, contract_id, organization_id).to_dto()

    def list_contracts(
        self,
        organization_id: UUID,
        status: ContractStatus | None = None,
        created_by_user_id: UUID | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Contract]:
        """Contracts of one organization, newest first."""
        stmt = select(ContractModel).where(ContractModel.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(ContractModel.status == status.value)
        if created_by_user_id is not None:
            stmt = stmt.where(ContractModel.created_by_user_id == created_by_user_id)
        stmt = (
            stmt.order_by(ContractModel.created_at.desc(), ContractModel.reference)
            .offset(offset)
            .limit(limit)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    # Helpers

    @staticmethod
    def _assign(model: ContractModel, values: Mapping[str, Any]) -> None:
        """Write column values, coercing dates and money."""
        for name in _TEXT_COLUMNS:
            if name in values:
                value = values[name]
                setattr(model, name, value.strip() if isinstance(value, str) else value)
        for name in _DATE_COLUMNS:
            if name in values:
                raw = values[name]
                setattr(model, name, FieldValue.date(raw).value if raw else None)
        if "amount" in values:
            raw = values["amount"]
            model.amount = FieldValue.money(raw).value if raw is not None else None

    @staticmethod
    def _proposed_fields(model: ContractModel) -> dict[str, Any]:
        fields = model.tracked_values()
        fields["field_data"] = dict(model.field_data or {})
        return fields
