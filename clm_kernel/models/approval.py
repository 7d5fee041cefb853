"""
Module: clm_kernel.models.approval
Responsibility: ORM persistence for contract approval records.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Valid type/status/role values via CHECK constraints.
    - At most one open (PENDING/ESCALATED) record per (contract, type):
      partial unique index ``uq_approval_records_open``.  The workflow
      service checks this transactionally as well.
    - ``lock_version`` optimistic compare-and-swap: a concurrent decision on
      the same record raises StaleDataError on flush.

Failure modes:
    - IntegrityError on a second open record for the same phase.
    - StaleDataError on a concurrent update.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from clm_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from clm_kernel.domain.approval import ApprovalRecord

_OPEN_PREDICATE = "status IN ('PENDING', 'ESCALATED')"


class ApprovalRecordModel(Base):
    """Persistent approval record for one phase of one contract."""

    __tablename__ = "approval_records"

    __table_args__ = (
        CheckConstraint(
            "approval_type IN ('LEGAL', 'FINANCE')",
            name="ck_approval_records_valid_type",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', "
            "'REVISION_REQUESTED', 'ESCALATED')",
            name="ck_approval_records_valid_status",
        ),
        Index(
            "uq_approval_records_open",
            "contract_id", "approval_type",
            unique=True,
            postgresql_where=text(_OPEN_PREDICATE),
            sqlite_where=text(_OPEN_PREDICATE),
        ),
        # Pending queue per organization
        Index(
            "ix_approval_records_org_queue",
            "organization_id", "approval_type", "status", "created_at",
        ),
    )

    contract_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=False,
    )
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approval_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING")
    assigned_role: Mapped[str] = mapped_column(String(30), nullable=False)
    acted_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    acted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    escalated_to_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    escalated_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    lock_version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return (
            f"<ApprovalRecord {self.id} {self.approval_type} "
            f"status={self.status}>"
        )

    def to_dto(self) -> ApprovalRecord:
        """Convert ORM model to frozen domain DTO."""
        from clm_kernel.domain.approval import (
            ApprovalRecord as ApprovalRecordDTO,
            ApprovalRecordStatus,
            ApprovalType,
            ApproverRole,
        )

        return ApprovalRecordDTO(
            id=self.id,
            contract_id=self.contract_id,
            organization_id=self.organization_id,
            approval_type=ApprovalType(self.approval_type),
            status=ApprovalRecordStatus(self.status),
            assigned_role=ApproverRole(self.assigned_role),
            created_at=self.created_at,
            acted_by_user_id=self.acted_by_user_id,
            acted_at=self.acted_at,
            comment=self.comment,
            escalated_to_user_id=self.escalated_to_user_id,
            escalated_by_user_id=self.escalated_by_user_id,
            escalated_at=self.escalated_at,
        )
