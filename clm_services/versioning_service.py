"""
clm_services.versioning_service -- When to version a contract, and what changed.

Responsibility:
    Decides whether an edit produces a new ContractVersion, stores it through
    VersionStore, runs the DiffEngine against the previous snapshot and
    persists the resulting ChangeLogEntry.  Also serves version history,
    per-version changelogs and arbitrary two-version comparisons.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Imports clm_engines (pure DiffEngine) and clm_kernel (VersionStore,
    SequenceService, models).

Invariants enforced:
    - The first write always creates version 1.
    - An edit whose body (exact string) and tracked fields all equal the
      latest snapshot writes nothing and returns None.
    - Version, changelog and audit record are written inside one savepoint:
      a failure leaves no partial version behind.
    - The optimistic ``expected_sequence`` check happens under the
      per-contract counter lock, before change detection.

Failure modes:
    - VersionConflictError: stale ``expected_sequence`` or lost sequence race.
    - ContractNotFoundError / VersionNotFoundError: unknown or foreign ids.
    - ValueError: a proposed field value does not fit its declared kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from clm_config.schema import EngineConfig
from clm_engines.diff import DiffEngine
from clm_kernel.domain.changelog import ChangeLog, VersionComparison
from clm_kernel.domain.clock import Clock, SystemClock
from clm_kernel.domain.contract import Contract, ContractVersion, build_snapshot
from clm_kernel.exceptions import VersionConflictError, VersionNotFoundError
from clm_kernel.logging_config import get_logger
from clm_kernel.models.audit_event import AuditAction
from clm_kernel.services.audit_service import AuditRecord, AuditSink, DatabaseAuditSink
from clm_kernel.services.sequence_service import SequenceService
from clm_kernel.services.version_store import VersionStore
from clm_services._loading import load_contract
from clm_services._side_effects import emit_audit

logger = get_logger("services.versioning")


@dataclass(frozen=True)
class VersionHistoryEntry:
    """A stored version together with the changelog that produced it."""

    version: ContractVersion
    changelog: ChangeLog | None


class VersioningService:
    """
    Version creation policy plus history queries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT check edit permissions or contract status
          (ContractService does).
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
        self._store = VersionStore(session)
        self._sequences = SequenceService(session)
        self._audit_sink = audit_sink or DatabaseAuditSink(session, self._clock)
        versioning = self._config.versioning
        self._diff_engine = DiffEngine(
            labels=versioning.labels,
            context_lines=versioning.diff_context_lines,
            split_html_blocks=versioning.split_html_blocks,
        )

    def create_version_if_changed(
        self,
        contract: Contract,
        proposed_fields: Mapping[str, Any],
        proposed_body: str | None,
        actor_id: UUID,
        expected_sequence: int | None = None,
    ) -> ContractVersion | None:
        """
        Store a new version when the proposed state differs from the latest.

        Args:
            contract: The contract being edited.
            proposed_fields: Tracked top-level values keyed by field name;
                an optional ``field_data`` entry holds free-form extra fields.
            proposed_body: The new contract body (None is treated as "").
            actor_id: Who made the edit.
            expected_sequence: Latest sequence the caller saw (0 for none).
                None skips the optimistic check.

        Returns:
            The new ContractVersion, or None when nothing changed.

        Raises:
            VersionConflictError: see module docstring.
        """
        snapshot = build_snapshot(
            proposed_body,
            proposed_fields,
            field_data=proposed_fields.get("field_data"),
            tracked_fields=self._config.versioning.tracked_fields,
        )

        with self._session.begin_nested():
            sequence_name = SequenceService.contract_version_sequence(contract.id)
            current = self._sequences.lock(sequence_name)
            if expected_sequence is not None and expected_sequence != current:
                logger.info(
                    "version_conflict",
                    extra={
                        "contract_id": str(contract.id),
                        "expected_sequence": expected_sequence,
                        "actual_sequence": current,
                    },
                )
                raise VersionConflictError(str(contract.id), expected_sequence, current)

            latest = self._store.latest(contract.id)
            if latest is not None and latest.snapshot.same_as(snapshot):
                logger.debug(
                    "version_unchanged",
                    extra={"contract_id": str(contract.id), "sequence": latest.sequence},
                )
                return None

            now = self._clock.now()
            version = self._store.append(contract.id, snapshot, actor_id, now)
            changelog = self._diff_engine.diff(
                latest.snapshot if latest else None,
                snapshot,
                from_sequence=latest.sequence if latest else None,
                to_sequence=version.sequence,
            )
            self._store.save_changelog(changelog, version.id, contract.id, now)

        emit_audit(
            self._session,
            self._audit_sink,
            AuditRecord(
                organization_id=contract.organization_id,
                user_id=actor_id,
                action=AuditAction.VERSION_CREATED,
                target_type="ContractVersion",
                target_id=version.id,
                contract_id=contract.id,
                new_value=str(version.sequence),
                metadata={
                    "summary": changelog.summary,
                    "change_count": changelog.change_count,
                },
            ),
        )

        logger.info(
            "version_created",
            extra={
                "contract_id": str(contract.id),
                "sequence": version.sequence,
                "change_count": changelog.change_count,
                "summary": changelog.summary,
            },
        )
        return version

    # Queries

    def list_versions(
        self,
        contract_id: UUID,
        organization_id: UUID,
    ) -> list[VersionHistoryEntry]:
        """All versions, oldest first, each with its changelog."""
        load_contract(self._session, contract_id, organization_id)
        changelogs = self._store.changelogs(contract_id)
        return [
            VersionHistoryEntry(version=v, changelog=changelogs.get(v.id))
            for v in self._store.list_versions(contract_id)
        ]

    def get_changelog(
        self,
        contract_id: UUID,
        version_id: UUID,
        organization_id: UUID,
    ) -> ChangeLog:
        """The changelog stored with ``version_id``."""
        load_contract(self._session, contract_id, organization_id)
        self._store.get(contract_id, version_id)
        changelog = self._store.get_changelog(version_id)
        if changelog is None:
            raise VersionNotFoundError(str(contract_id), str(version_id))
        return changelog

    def compare_versions(
        self,
        contract_id: UUID,
        from_version_id: UUID,
        to_version_id: UUID,
        organization_id: UUID,
    ) -> VersionComparison:
        """Field changes, content stats and hunks from one version to another.

        The versions need not be adjacent, and ``from`` may be newer than
        ``to`` (the comparison then reads as an undo).
        """
        load_contract(self._session, contract_id, organization_id)
        older = self._store.get(contract_id, from_version_id)
        newer = self._store.get(contract_id, to_version_id)
        return self._diff_engine.compare(
            older.snapshot,
            newer.snapshot,
            from_sequence=older.sequence,
            to_sequence=newer.sequence,
        )

    def latest_sequence(self, contract_id: UUID) -> int:
        return self._store.latest_sequence(contract_id)
