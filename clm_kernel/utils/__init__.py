"""Utility functions for the contract kernel."""

from clm_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
    hash_snapshot,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "hash_snapshot",
    "hash_audit_event",
]
