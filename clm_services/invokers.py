"""
clm_services.invokers -- Operation boundary helpers.

Responsibility:
    ``invoke`` turns the typed ``ClmKernelError`` hierarchy into an
    ``OperationResult`` for adapters that prefer results to exceptions.
    ``with_version_retry`` re-runs an operation that lost a version race,
    a bounded number of times with exponential backoff (tenacity).

Invariants enforced:
    - Only ``ClmKernelError`` subclasses are converted; programming errors
      propagate unchanged.
    - Only ``VersionConflictError`` is retried.  Approval conflicts are
      never retried: a second decision must be made by a human.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from tenacity import (
    Retrying,
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clm_config.schema import RetrySettings
from clm_kernel.exceptions import ClmKernelError, VersionConflictError
from clm_kernel.logging_config import get_logger

logger = get_logger("services.invokers")

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one operation call.

    ``value`` is set when ``ok``; otherwise ``error_code`` carries the
    exception's machine-readable code and ``error`` the exception itself.
    """

    ok: bool
    value: T | None = None
    error_code: str | None = None
    error: ClmKernelError | None = None

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ClmKernelError) -> OperationResult[T]:
        return cls(ok=False, error_code=error.code, error=error)

    def unwrap(self) -> T:
        """Return the value, or re-raise the captured error."""
        if not self.ok:
            raise self.error
        return self.value


def invoke(fn: Callable[..., T], *args: Any, **kwargs: Any) -> OperationResult[T]:
    """Call ``fn`` and capture any ClmKernelError as a failed result."""
    try:
        return OperationResult.success(fn(*args, **kwargs))
    except ClmKernelError as exc:
        logger.info(
            "operation_failed",
            extra={
                "operation": getattr(fn, "__name__", repr(fn)),
                "error_code": exc.code,
            },
        )
        return OperationResult.failure(exc)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "version_conflict_retry",
        extra={
            "attempt": retry_state.attempt_number,
            "error": str(exc) if exc else None,
        },
    )


def _retry_kwargs(settings: RetrySettings) -> dict[str, Any]:
    return {
        "stop": stop_after_attempt(settings.max_attempts),
        "wait": wait_exponential(
            multiplier=settings.backoff_initial_seconds,
            max=settings.backoff_max_seconds,
        ),
        "retry": retry_if_exception_type(VersionConflictError),
        "before_sleep": _log_retry,
        "reraise": True,
    }


def with_version_retry(
    fn: Callable[..., T],
    settings: RetrySettings | None = None,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Call ``fn`` until it stops raising VersionConflictError.

    ``fn`` must re-read whatever optimistic token it passes (for example
    the latest sequence) on every call, otherwise each attempt fails the
    same way.  After ``settings.max_attempts`` the last
    VersionConflictError propagates.
    """
    retrying = Retrying(**_retry_kwargs(settings or RetrySettings()))
    return retrying(fn, *args, **kwargs)


def version_retry(settings: RetrySettings | None = None) -> Callable:
    """Decorator form of ``with_version_retry``."""
    return retry(**_retry_kwargs(settings or RetrySettings()))
