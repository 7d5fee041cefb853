"""
Module: clm_kernel.models.contract
Responsibility: ORM persistence for contracts, the mutable aggregate root of
    the approval workflow.
Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside to_dto()).

Invariants enforced:
    - Reference is unique per organization (UNIQUE(organization_id, reference)).
    - Status values are limited by a CHECK constraint.
    - Status changes only through the approval workflow: a flush that changes
      ``status`` without a matching authorization token raises
      ImmutabilityViolationError (see db/immutability.py).
    - Contracts are never deleted (db/immutability.py).
    - ``lock_version`` is an optimistic compare-and-swap counter; a stale
      UPDATE raises StaleDataError.

Failure modes:
    - IntegrityError on duplicate reference.
    - StaleDataError when another transaction updated the row first.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from clm_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from clm_kernel.domain.contract import Contract, ContractStatus


_STATUS_VALUES = (
    "DRAFT",
    "PENDING_LEGAL",
    "PENDING_FINANCE",
    "APPROVED",
    "SENT_TO_COUNTERPARTY",
    "COUNTERSIGNED",
    "ACTIVE",
    "REJECTED",
    "EXPIRED",
    "TERMINATED",
)


class ContractModel(Base):
    """Persistent contract.

    Contract:
        Business fields are editable only while DRAFT (enforced by
        ContractService).  ``status`` is written only by the approval
        workflow, which calls ``authorize_status_change`` first.

    Guarantees:
        - Created in DRAFT.
        - Never deleted.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "reference",
            name="uq_contracts_org_reference",
        ),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in _STATUS_VALUES) + ")",
            name="ck_contracts_valid_status",
        ),
        Index("ix_contracts_org_status", "organization_id", "status"),
        Index("ix_contracts_end_date", "status", "end_date"),
    )

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counterparty_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    annexure_data: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="DRAFT")

    created_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lock_version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": lock_version}

    def __repr__(self) -> str:
        return f"<Contract {self.reference} status={self.status}>"

    @property
    def status_enum(self) -> ContractStatus:
        from clm_kernel.domain.contract import ContractStatus

        return ContractStatus(self.status)

    def authorize_status_change(self, new_status: ContractStatus) -> None:
        """Permit the next flush to move ``status`` to ``new_status``.

        Only the approval workflow calls this.  The token is consumed by
        the after_update listener.
        """
        self._authorized_status = new_status.value
        self.status = new_status.value

    def revoke_status_authorization(self) -> None:
        """Drop an unconsumed status token.  Savepoint rollback leaves it set."""
        self._authorized_status = None

    def tracked_values(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "counterparty_name": self.counterparty_name,
            "counterparty_email": self.counterparty_email,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "amount": self.amount,
            "description": self.description,
        }

    def to_dto(self) -> Contract:
        """Convert ORM model to frozen domain DTO."""
        from clm_kernel.domain.contract import Contract as ContractDTO
        from clm_kernel.domain.contract import ContractStatus

        return ContractDTO(
            id=self.id,
            organization_id=self.organization_id,
            reference=self.reference,
            title=self.title,
            status=ContractStatus(self.status),
            counterparty_name=self.counterparty_name,
            counterparty_email=self.counterparty_email,
            amount=self.amount,
            start_date=self.start_date,
            end_date=self.end_date,
            description=self.description,
            field_data=dict(self.field_data or {}),
            annexure_data=self.annexure_data or "",
            created_by_user_id=self.created_by_user_id,
            created_at=self.created_at,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            sent_at=self.sent_at,
            signed_at=self.signed_at,
            activated_at=self.activated_at,
            closed_at=self.closed_at,
        )
