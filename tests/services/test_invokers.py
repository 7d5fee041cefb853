"""
Tests for operation boundary helpers (``clm_services.invokers``).

Covers:
- invoke(): success, typed failure, programming errors propagate
- with_version_retry(): retries VersionConflictError only, bounded
- version_retry decorator
- end-to-end retry of a stale contract edit
"""

import pytest

from clm_config.schema import RetrySettings
from clm_kernel.exceptions import (
    ApprovalConflictError,
    ContractNotFoundError,
    VersionConflictError,
)
from clm_services.invokers import (
    OperationResult,
    invoke,
    version_retry,
    with_version_retry,
)

FAST = RetrySettings(max_attempts=3, backoff_initial_seconds=0, backoff_max_seconds=0)


class Flaky:
    """Raises ``error`` for the first ``failures`` calls."""

    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self, value="done"):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestInvoke:
    def test_success(self):
        result = invoke(lambda x: x * 2, 21)
        assert result.ok
        assert result.value == 42
        assert result.unwrap() == 42

    def test_kernel_error_captured(self):
        def missing():
            raise ContractNotFoundError("c-1")

        result = invoke(missing)
        assert not result.ok
        assert result.error_code == "CONTRACT_NOT_FOUND"
        with pytest.raises(ContractNotFoundError):
            result.unwrap()

    def test_programming_error_propagates(self):
        def broken():
            raise KeyError("oops")

        with pytest.raises(KeyError):
            invoke(broken)

    def test_failure_constructor(self):
        result = OperationResult.failure(ApprovalConflictError("c-1"))
        assert result.error_code == "APPROVAL_CONFLICT"
        assert result.value is None


class TestWithVersionRetry:
    def test_recovers_after_conflicts(self, captured_logs):
        fn = Flaky(2, VersionConflictError("c-1", 1, 2))

        assert with_version_retry(fn, FAST, "saved") == "saved"
        assert fn.calls == 3
        retries = [r for r in captured_logs() if r["message"] == "version_conflict_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_gives_up_after_max_attempts(self):
        fn = Flaky(10, VersionConflictError("c-1", 1, 2))

        with pytest.raises(VersionConflictError):
            with_version_retry(fn, FAST)
        assert fn.calls == FAST.max_attempts

    def test_approval_conflicts_are_not_retried(self):
        fn = Flaky(1, ApprovalConflictError("c-1"))

        with pytest.raises(ApprovalConflictError):
            with_version_retry(fn, FAST)
        assert fn.calls == 1

    def test_decorator(self):
        fn = Flaky(1, VersionConflictError("c-1", 0, 1))
        wrapped = version_retry(FAST)(fn)

        assert wrapped() == "done"
        assert fn.calls == 2


class TestRetryingAnEdit:
    def test_reread_sequence_on_each_attempt(
        self, contract_service, draft_contract, author_id, org_id,
    ):
        """The first attempt uses a stale token; the retry re-reads it."""
        tokens = iter([0])

        def edit():
            expected = next(tokens, None)
            if expected is None:
                expected = contract_service.versioning.latest_sequence(draft_contract.id)
            return contract_service.update(
                draft_contract.id, author_id, org_id,
                {"description": "Adds on-site support"},
                expected_sequence=expected,
            )

        _, version = with_version_retry(edit, FAST)
        assert version.sequence == 2
