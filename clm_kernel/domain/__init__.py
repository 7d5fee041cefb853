"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from clm_kernel.domain.approval import (
    OPEN_RECORD_STATUSES,
    RECORD_TRANSITIONS,
    ActingAuthority,
    ApprovalRecord,
    ApprovalRecordStatus,
    ApprovalType,
    ApproverRole,
    Permission,
    can_move_record,
    who_may_act,
)
from clm_kernel.domain.changelog import (
    ChangeLog,
    ChangeType,
    ContentChange,
    DiffHunk,
    DiffStats,
    FieldChange,
    LineEdit,
    LineOp,
    VersionComparison,
)
from clm_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from clm_kernel.domain.contract import (
    DEFAULT_TRACKED_FIELDS,
    Contract,
    ContractStatus,
    ContractVersion,
    Snapshot,
    TrackedField,
    build_snapshot,
)
from clm_kernel.domain.fields import FieldKind, FieldValue, coerce_field_value
from clm_kernel.domain.workflow import (
    CONTRACT_WORKFLOW,
    Guard,
    Transition,
    Workflow,
    WorkflowAction,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Fields
    "FieldKind",
    "FieldValue",
    "coerce_field_value",
    # Contract
    "ContractStatus",
    "Contract",
    "ContractVersion",
    "Snapshot",
    "TrackedField",
    "DEFAULT_TRACKED_FIELDS",
    "build_snapshot",
    # Approval
    "ApprovalType",
    "ApprovalRecordStatus",
    "ApprovalRecord",
    "ApproverRole",
    "ActingAuthority",
    "Permission",
    "OPEN_RECORD_STATUSES",
    "RECORD_TRANSITIONS",
    "can_move_record",
    "who_may_act",
    # Workflow
    "WorkflowAction",
    "Guard",
    "Transition",
    "Workflow",
    "CONTRACT_WORKFLOW",
    # Changelog
    "ChangeType",
    "FieldChange",
    "DiffStats",
    "ContentChange",
    "ChangeLog",
    "LineOp",
    "LineEdit",
    "DiffHunk",
    "VersionComparison",
]
