"""
Module: clm_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (db/immutability.py).
    - Hash chain integrity: hash = H(target_type | target_id | action |
      payload_hash | prev_hash).  Validated by AuditService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    AuditEvent IS the audit trail.  Every state-changing workflow call and
    every contract create/update/version write produces one row.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clm_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Contract lifecycle
    CONTRACT_CREATED = "contract_created"
    CONTRACT_UPDATED = "contract_updated"
    CONTRACT_SUBMITTED = "contract_submitted"
    CONTRACT_SENT = "contract_sent"
    CONTRACT_SIGNED_UPLOADED = "contract_signed_uploaded"
    CONTRACT_ACTIVATED = "contract_activated"
    CONTRACT_TERMINATED = "contract_terminated"
    CONTRACT_EXPIRED = "contract_expired"

    # Approval lifecycle
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REJECTED = "approval_rejected"
    REVISION_REQUESTED = "revision_requested"
    APPROVAL_ESCALATED = "approval_escalated"
    ESCALATED_TO_LEGAL_HEAD = "escalated_to_legal_head"
    RETURNED_TO_MANAGER = "returned_to_manager"

    # Versioning
    VERSION_CREATED = "version_created"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_contract", "organization_id", "contract_id"),
        Index("idx_audit_target", "target_type", "target_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    contract_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # What was acted on (e.g. "Contract", "ApprovalRecord", "ContractVersion")
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.target_type}:{self.target_id}>"
