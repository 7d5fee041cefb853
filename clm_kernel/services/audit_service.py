"""
AuditService -- the hash-chained audit log.

Workflow and contract services never call this directly.  They hand an
``AuditRecord`` to an ``AuditSink``; ``DatabaseAuditSink``, the default,
writes it here as an ``AuditEvent`` row.

Each row stores ``payload_hash`` (who, which contract, old and new value,
metadata) and ``hash = H(target_type | target_id | action | payload_hash |
prev_hash)``, where ``prev_hash`` is the hash of the row before it in
``seq`` order.  Rows are append-only; ``validate_chain`` finds the first
one whose stored hashes no longer match its contents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, NoReturn, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from clm_kernel.domain.clock import Clock, SystemClock
from clm_kernel.exceptions import AuditChainBrokenError
from clm_kernel.logging_config import get_logger
from clm_kernel.models.audit_event import AuditAction, AuditEvent
from clm_kernel.services.sequence_service import SequenceService
from clm_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.audit")


@dataclass(frozen=True)
class AuditRecord:
    """What happened, to what, by whom.  Emitted once per state change."""

    organization_id: UUID
    user_id: UUID
    action: AuditAction
    target_type: str
    target_id: UUID
    contract_id: UUID | None = None
    old_value: str | None = None
    new_value: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class AuditSink(Protocol):
    """Outbound port for audit records."""

    def emit(self, record: AuditRecord) -> None: ...


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    user_id: UUID
    target_type: str
    target_id: UUID
    old_value: str | None
    new_value: str | None
    metadata: Mapping[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> AuditTraceEntry:
        return cls(
            seq=event.seq,
            action=AuditAction(event.action),
            occurred_at=event.occurred_at,
            user_id=event.user_id,
            target_type=event.target_type,
            target_id=event.target_id,
            old_value=event.old_value,
            new_value=event.new_value,
            metadata=event.event_metadata or {},
            hash=event.hash,
        )


class AuditService:
    """
    Appends to and verifies the hash-chained audit log.

    Flushes only; the caller's unit of work decides whether events persist.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    @staticmethod
    def _payload_hash(
        organization_id: UUID,
        contract_id: UUID | None,
        user_id: UUID,
        old_value: str | None,
        new_value: str | None,
        metadata: Mapping[str, Any] | None,
    ) -> str:
        return hash_payload({
            "organization_id": organization_id,
            "contract_id": contract_id,
            "user_id": user_id,
            "old_value": old_value,
            "new_value": new_value,
            "metadata": dict(metadata or {}),
        })

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(self, record: AuditRecord) -> AuditEvent:
        """Flush one event whose ``prev_hash`` is the current chain head."""
        # Allocating the sequence locks the audit counter, so the chain head
        # read below cannot move until this transaction ends.
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_head()
        payload_hash = self._payload_hash(
            record.organization_id, record.contract_id, record.user_id,
            record.old_value, record.new_value, record.metadata,
        )

        audit_event = AuditEvent(
            seq=seq,
            organization_id=record.organization_id,
            contract_id=record.contract_id,
            user_id=record.user_id,
            action=record.action.value,
            target_type=record.target_type,
            target_id=record.target_id,
            old_value=record.old_value,
            new_value=record.new_value,
            event_metadata=dict(record.metadata) or None,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(
                record.target_type, str(record.target_id), record.action.value,
                payload_hash, prev_hash,
            ),
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "seq": seq,
                "action": record.action.value,
                "target_type": record.target_type,
                "target_id": str(record.target_id),
            },
        )
        return audit_event

    def validate_chain(self) -> bool:
        """
        Recompute every payload hash and chain link, oldest event first.

        Raises:
            AuditChainBrokenError: at the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous else None
            if event.prev_hash != expected_prev:
                self._broken(event, expected_prev or "None", event.prev_hash or "None")

            payload_hash = self._payload_hash(
                event.organization_id, event.contract_id, event.user_id,
                event.old_value, event.new_value, event.event_metadata,
            )
            if payload_hash != event.payload_hash:
                self._broken(event, event.payload_hash, payload_hash)

            link = hash_audit_event(
                event.target_type, str(event.target_id), event.action,
                event.payload_hash, event.prev_hash,
            )
            if link != event.hash:
                self._broken(event, link, event.hash)
            previous = event

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    @staticmethod
    def _broken(event: AuditEvent, expected: str, actual: str) -> NoReturn:
        logger.critical("audit_chain_broken", extra={"seq": event.seq, "event_id": str(event.id)})
        raise AuditChainBrokenError(str(event.id), expected, actual)

    def get_trace(self, organization_id: UUID, contract_id: UUID) -> tuple[AuditTraceEntry, ...]:
        """Every audit event for one contract, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.organization_id == organization_id,
                AuditEvent.contract_id == contract_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()
        return tuple(AuditTraceEntry.from_event(event) for event in events)


class DatabaseAuditSink:
    """Default AuditSink: writes hash-chained rows through AuditService."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._auditor = AuditService(session, clock)

    def emit(self, record: AuditRecord) -> None:
        self._auditor.record(record)
