"""
VersionStore -- append-only storage of contract snapshots and changelogs.

Responsibility:
    Persists ContractVersion snapshots keyed by (contract_id, sequence) and
    the ChangeLogEntry tied to each version.  Reads return frozen DTOs whose
    snapshot hash has been verified.

Architecture position:
    Kernel > Services -- imperative shell.  Called by VersioningService.
    Never decides *whether* a version is needed; it only stores one.

Invariants enforced:
    - Sequences come from the per-contract locked counter
      (SequenceService), never from max(sequence) + 1.
    - The caller compares its optimistic token against the locked counter
      inside the same savepoint before calling ``append``; the counter lock
      is still held when ``append`` allocates the next value.
    - Versions and changelog entries are write-once (db/immutability.py).

Failure modes:
    - VersionConflictError: a concurrent writer already stored the
      allocated sequence.
    - VersionNotFoundError: unknown version, or owned by another contract.
    - SnapshotTamperedError: stored snapshot fails hash verification.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clm_kernel.domain.changelog import ChangeLog
from clm_kernel.domain.contract import ContractVersion, Snapshot
from clm_kernel.exceptions import VersionConflictError, VersionNotFoundError
from clm_kernel.logging_config import get_logger
from clm_kernel.models.version import ChangeLogEntryModel, ContractVersionModel
from clm_kernel.services.sequence_service import SequenceService

logger = get_logger("services.version_store")


class VersionStore:
    """
    Append-only version repository.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT diff snapshots (DiffEngine does).
    """

    def __init__(self, session: Session):
        self._session = session
        self._sequences = SequenceService(session)

    # Writes

    def append(
        self,
        contract_id: UUID,
        snapshot: Snapshot,
        actor_id: UUID,
        created_at: datetime,
    ) -> ContractVersion:
        """
        Store a new version with the next sequence for the contract.

        Args:
            contract_id: Owning contract.
            snapshot: Body and tracked fields to store.
            actor_id: Who caused the version.
            created_at: Timestamp from the caller's clock.

        Raises:
            VersionConflictError: see module docstring.
        """
        sequence_name = SequenceService.contract_version_sequence(contract_id)
        sequence = self._sequences.next_value(sequence_name)
        model = ContractVersionModel(
            contract_id=contract_id,
            sequence=sequence,
            annexure_data=snapshot.body,
            fields=snapshot.fields_json(),
            snapshot_hash=snapshot.compute_hash(),
            created_by_user_id=actor_id,
            created_at=created_at,
        )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise VersionConflictError(
                str(contract_id), sequence - 1, sequence,
            ) from exc

        logger.debug(
            "version_stored",
            extra={"contract_id": str(contract_id), "sequence": sequence},
        )
        return model.to_dto()

    def save_changelog(
        self,
        changelog: ChangeLog,
        version_id: UUID,
        contract_id: UUID,
        created_at: datetime,
    ) -> ChangeLogEntryModel:
        entry = ChangeLogEntryModel.from_dto(changelog, version_id, contract_id, created_at)
        self._session.add(entry)
        self._session.flush()
        return entry

    # Reads

    def latest(self, contract_id: UUID) -> ContractVersion | None:
        model = self._session.execute(
            select(ContractVersionModel)
            .where(ContractVersionModel.contract_id == contract_id)
            .order_by(ContractVersionModel.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model else None

    def latest_sequence(self, contract_id: UUID) -> int:
        """Latest stored sequence (0 when the contract has no versions)."""
        latest = self.latest(contract_id)
        return latest.sequence if latest else 0

    def get(self, contract_id: UUID, version_id: UUID) -> ContractVersion:
        model = self._session.get(ContractVersionModel, version_id)
        if model is None or model.contract_id != contract_id:
            raise VersionNotFoundError(str(contract_id), str(version_id))
        return model.to_dto()

    def list_versions(self, contract_id: UUID) -> list[ContractVersion]:
        models = self._session.execute(
            select(ContractVersionModel)
            .where(ContractVersionModel.contract_id == contract_id)
            .order_by(ContractVersionModel.sequence)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def get_changelog(self, version_id: UUID) -> ChangeLog | None:
        entry = self._session.execute(
            select(ChangeLogEntryModel)
            .where(ChangeLogEntryModel.version_id == version_id)
        ).scalar_one_or_none()
        return entry.to_dto() if entry else None

    def changelogs(self, contract_id: UUID) -> dict[UUID, ChangeLog]:
        """All changelog entries of a contract keyed by version id."""
        entries = self._session.execute(
            select(ChangeLogEntryModel)
            .where(ChangeLogEntryModel.contract_id == contract_id)
        ).scalars().all()
        return {e.version_id: e.to_dto() for e in entries}
