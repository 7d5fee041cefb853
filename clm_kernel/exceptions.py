"""
Typed Exception Hierarchy for the Contract Lifecycle Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Workflow adapters (HTTP controllers, batch jobs, CLIs) must map kernel
failures onto responses precisely.  Every error therefore has:

  1. a TYPED exception class (catch by type, not message)
  2. a CODE class attribute (machine-readable, API-safe)
  3. structured DATA attributes (not just a message string)

Example - RIGHT way to handle errors:

    try:
        workflow.approve(contract_id, actor_id, org_id, permissions)
    except InvalidTransitionError as e:
        return {"error": e.code, "status": e.current_status,
                "allowed": list(e.allowed_actions)}
    except ConcurrencyError as e:
        return {"error": e.code, "hint": "reload and retry"}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ClmKernelError (base)
    |
    +-- AuthorizationError
    |   +-- ForbiddenError
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- VersionNotFoundError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- NoPendingApprovalError
    |   +-- CommentRequiredError
    |   +-- ContractNotEditableError
    |
    +-- ConcurrencyError
    |   +-- ApprovalConflictError
    |   +-- VersionConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- SnapshotTamperedError
    |   +-- AuditChainBrokenError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                   | When Raised
--------------|------------------------|-------------------------------------------
Authorization | FORBIDDEN              | Actor lacks the permission for the action
--------------|------------------------|-------------------------------------------
Not found     | CONTRACT_NOT_FOUND     | No contract with that ID in the tenant
              | APPROVAL_NOT_FOUND     | Approval record missing
              | VERSION_NOT_FOUND      | Version missing or owned by another contract
--------------|------------------------|-------------------------------------------
Workflow      | INVALID_TRANSITION     | Action not legal from the current status
              | NO_PENDING_APPROVAL    | No open approval record of expected type
              | COMMENT_REQUIRED       | Reject / revision / return without comment
              | CONTRACT_NOT_EDITABLE  | Edit attempted outside DRAFT
--------------|------------------------|-------------------------------------------
Concurrency   | APPROVAL_CONFLICT      | Record or contract changed by another request
              | VERSION_CONFLICT       | Expected sequence != latest sequence (retry)
--------------|------------------------|-------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION | UPDATE/DELETE on a write-once record
              | SNAPSHOT_TAMPERED      | Stored snapshot hash does not verify
              | AUDIT_CHAIN_BROKEN     | Audit hash chain does not verify
--------------|------------------------|-------------------------------------------
Config        | CONFIGURATION_ERROR    | Invalid configuration value

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VersionConflictError is the ONLY error callers retry automatically
   (bounded, see ``clm_services.invokers.with_version_retry``).

2. ApprovalConflictError / NoPendingApprovalError mean another request won
   the race.  Refresh and show the user the current state; never retry
   blindly.

3. ImmutabilityError signals a programming error or tampering.  Log at
   ERROR and stop.

===============================================================================
"""


class ClmKernelError(Exception):
    """
    Base exception for all contract kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "CLM_KERNEL_ERROR"


# Authorization


class AuthorizationError(ClmKernelError):
    """Base exception for permission failures."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenError(AuthorizationError):
    """Actor lacks the permission required by the attempted action."""

    code: str = "FORBIDDEN"

    def __init__(self, action: str, required_permission: str, actor_id: str | None = None):
        self.action = action
        self.required_permission = required_permission
        self.actor_id = actor_id
        super().__init__(
            f"Action '{action}' requires permission '{required_permission}'"
        )


# Not found


class NotFoundError(ClmKernelError):
    """Base exception for missing (or cross-tenant) records."""

    code: str = "NOT_FOUND"


class ContractNotFoundError(NotFoundError):
    """Contract does not exist or belongs to another organization."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


class ApprovalNotFoundError(NotFoundError):
    """Approval record does not exist."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval record not found: {approval_id}")


class VersionNotFoundError(NotFoundError):
    """Version does not exist or is not owned by the given contract."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, contract_id: str, version_id: str):
        self.contract_id = contract_id
        self.version_id = version_id
        super().__init__(
            f"Version {version_id} not found for contract {contract_id}"
        )


# Workflow


class WorkflowError(ClmKernelError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """
    The requested action is not legal from the current status.

    Carries the current status and the actions that *are* legal so the
    caller can render a useful message.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        current_status: str,
        action: str,
        allowed_actions: tuple[str, ...] = (),
        reason: str | None = None,
    ):
        self.current_status = current_status
        self.action = action
        self.allowed_actions = allowed_actions
        self.reason = reason
        message = f"Action '{action}' is not allowed from status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoPendingApprovalError(WorkflowError):
    """
    No open approval record of the expected type exists.

    Either a concurrent request already acted on it, or the workflow is
    out of sync.  Callers should refresh the contract.
    """

    code: str = "NO_PENDING_APPROVAL"

    def __init__(self, contract_id: str, approval_type: str | None):
        self.contract_id = contract_id
        self.approval_type = approval_type
        super().__init__(
            f"No open {approval_type or 'approval'} record for contract "
            f"{contract_id}; refresh and try again"
        )


class CommentRequiredError(WorkflowError):
    """A comment is mandatory for this action."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A comment is required to {action}")


class ContractNotEditableError(WorkflowError):
    """Contract content can only change while in DRAFT."""

    code: str = "CONTRACT_NOT_EDITABLE"

    def __init__(self, contract_id: str, status: str):
        self.contract_id = contract_id
        self.status = status
        super().__init__(
            f"Contract {contract_id} is {status}; only DRAFT contracts can be edited"
        )


# Concurrency


class ConcurrencyError(ClmKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ApprovalConflictError(ConcurrencyError):
    """The contract or its open approval record was changed concurrently."""

    code: str = "APPROVAL_CONFLICT"

    def __init__(self, contract_id: str, detail: str = ""):
        self.contract_id = contract_id
        self.detail = detail
        message = f"Concurrent modification of contract {contract_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VersionConflictError(ConcurrencyError):
    """
    Optimistic concurrency check on version creation failed.

    The caller should reload the latest version and retry.
    """

    code: str = "VERSION_CONFLICT"

    def __init__(
        self,
        contract_id: str,
        expected_sequence: int | None,
        actual_sequence: int | None,
    ):
        self.contract_id = contract_id
        self.expected_sequence = expected_sequence
        self.actual_sequence = actual_sequence
        super().__init__(
            f"Version conflict on contract {contract_id}: expected latest "
            f"sequence {expected_sequence}, found {actual_sequence}"
        )


# Immutability


class ImmutabilityError(ClmKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a write-once record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(ImmutabilityError):
    """Audit hash chain does not verify."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, event_id: str, expected_hash: str, actual_hash: str):
        self.event_id = event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class SnapshotTamperedError(ImmutabilityError):
    """Stored snapshot no longer matches the hash computed at write time."""

    code: str = "SNAPSHOT_TAMPERED"

    def __init__(self, version_id: str, expected_hash: str, computed_hash: str):
        self.version_id = version_id
        self.expected_hash = expected_hash
        self.computed_hash = computed_hash
        super().__init__(
            f"Snapshot hash mismatch for version {version_id}: "
            f"expected {expected_hash}, computed {computed_hash}"
        )


# Configuration


class ConfigurationError(ClmKernelError):
    """A configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
