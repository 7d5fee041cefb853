"""ORM models for the contract kernel."""

from clm_kernel.models.approval import ApprovalRecordModel
from clm_kernel.models.audit_event import AuditAction, AuditEvent
from clm_kernel.models.contract import ContractModel
from clm_kernel.models.version import ChangeLogEntryModel, ContractVersionModel
from clm_kernel.models.sequence import SequenceCounter

__all__ = [
    "ContractModel",
    "ContractVersionModel",
    "ChangeLogEntryModel",
    "ApprovalRecordModel",
    "AuditEvent",
    "AuditAction",
    "SequenceCounter",
]
