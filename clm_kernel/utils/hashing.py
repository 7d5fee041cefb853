"""
Content hashes for version snapshots and the audit chain.

Everything hashed here goes through ``canonicalize_json`` first, so two
values that compare equal in the domain (``Decimal("1000")`` and
``Decimal("1000.00")``, say) produce the same digest on every platform.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CHAIN_START = "GENESIS"


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (UUID, Enum)):
        return str(value.value if isinstance(value, Enum) else value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Compact, key-sorted JSON text for ``data``."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_plain)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_snapshot(body: str, fields: dict) -> str:
    """Digest of a stored version: the body text plus its serialised fields."""
    return hash_payload({"body": body, "fields": fields})


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain link for one audit event.

    The previous event's hash is folded in, so editing any earlier event
    changes every hash after it.  The first event of a chain links to
    ``CHAIN_START``.
    """
    return _sha256("|".join((
        entity_type, str(entity_id), action, payload_hash, prev_hash or CHAIN_START,
    )))
