"""
clm_services -- stateful orchestration over the pure engines and the kernel.

Services flush but never commit: the caller owns the transaction.
"""

from clm_services.approval_workflow_service import (
    ApprovalWorkflowService,
    ExpiryReminder,
)
from clm_services.contract_service import ContractService
from clm_services.invokers import (
    OperationResult,
    invoke,
    version_retry,
    with_version_retry,
)
from clm_services.runtime import start
from clm_services.versioning_service import VersionHistoryEntry, VersioningService

__all__ = [
    "ApprovalWorkflowService",
    "ExpiryReminder",
    "ContractService",
    "VersioningService",
    "VersionHistoryEntry",
    "OperationResult",
    "invoke",
    "with_version_retry",
    "version_retry",
    "start",
]
