"""
Module: clm_kernel.models.version
Responsibility: ORM persistence for contract versions and their changelogs.
Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside to_dto()).

Invariants enforced:
    - Versions are append-only: UPDATE/DELETE raise ImmutabilityViolationError
      (db/immutability.py).
    - UNIQUE(contract_id, sequence): two writers can never store the same
      sequence for one contract.
    - snapshot_hash is computed at write time and verified on every load.
    - Exactly one changelog entry per version (UNIQUE(version_id)).

Failure modes:
    - IntegrityError on duplicate (contract_id, sequence) -- surfaced by
      VersionStore as VersionConflictError.
    - SnapshotTamperedError from to_dto() when the stored snapshot no longer
      hashes to snapshot_hash.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from clm_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from clm_kernel.domain.changelog import ChangeLog
    from clm_kernel.domain.contract import ContractVersion


class ContractVersionModel(Base):
    """Immutable contract snapshot.

    Guarantees:
        - sequence >= 1 and unique per contract.
        - fields holds ``FieldValue.to_json()`` dicts keyed by field name.
    """

    __tablename__ = "contract_versions"

    __table_args__ = (
        UniqueConstraint(
            "contract_id", "sequence",
            name="uq_contract_versions_sequence",
        ),
        CheckConstraint("sequence >= 1", name="ck_contract_versions_sequence_positive"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    annexure_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    snapshot_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ContractVersion {self.contract_id} v{self.sequence}>"

    def to_dto(self) -> ContractVersion:
        """Convert to a frozen DTO, verifying the snapshot hash.

        Raises:
            SnapshotTamperedError: stored content does not match the hash.
        """
        from clm_kernel.domain.contract import ContractVersion as ContractVersionDTO
        from clm_kernel.domain.contract import Snapshot
        from clm_kernel.exceptions import SnapshotTamperedError

        snapshot = Snapshot.from_json(self.annexure_data, self.fields or {})
        computed = snapshot.compute_hash()
        if computed != self.snapshot_hash:
            raise SnapshotTamperedError(
                version_id=str(self.id),
                expected_hash=self.snapshot_hash,
                computed_hash=computed,
            )
        return ContractVersionDTO(
            id=self.id,
            contract_id=self.contract_id,
            sequence=self.sequence,
            snapshot=snapshot,
            snapshot_hash=self.snapshot_hash,
            created_by_user_id=self.created_by_user_id,
            created_at=self.created_at,
        )


class ChangeLogEntryModel(Base):
    """Immutable changelog between a version and its predecessor."""

    __tablename__ = "change_log_entries"

    __table_args__ = (
        Index("ix_change_log_entries_contract", "contract_id", "to_sequence"),
    )

    version_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contract_versions.id"), nullable=False, unique=True,
    )
    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=False,
    )
    from_sequence: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    to_sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    change_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    field_changes: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list,
    )
    content_change: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ChangeLogEntry {self.contract_id} "
            f"v{self.from_sequence}->v{self.to_sequence}>"
        )

    def to_dto(self) -> ChangeLog:
        """Convert ORM model to frozen domain DTO."""
        from clm_kernel.domain.changelog import ChangeLog as ChangeLogDTO
        from clm_kernel.domain.changelog import ContentChange, FieldChange

        return ChangeLogDTO(
            from_sequence=self.from_sequence,
            to_sequence=self.to_sequence,
            field_changes=tuple(FieldChange.from_json(fc) for fc in self.field_changes or ()),
            content_change=(
                ContentChange.from_json(self.content_change)
                if self.content_change else None
            ),
            summary=self.summary,
        )

    @classmethod
    def from_dto(
        cls,
        dto: ChangeLog,
        version_id: UUID,
        contract_id: UUID,
        created_at: datetime,
    ) -> ChangeLogEntryModel:
        """Create ORM model from domain DTO."""
        return cls(
            version_id=version_id,
            contract_id=contract_id,
            from_sequence=dto.from_sequence,
            to_sequence=dto.to_sequence,
            summary=dto.summary,
            change_count=dto.change_count,
            field_changes=[fc.to_json() for fc in dto.field_changes],
            content_change=dto.content_change.to_json() if dto.content_change else None,
            created_at=created_at,
        )
