"""
Canonical JSON and SHA-256 helpers for the claim audit chain.

Each claim's audit entries are linked::

    content_hash = sha256(canonical JSON of seq, actor, kind, message,
                          statuses, payload, occurred_at)
    hash         = sha256("Claim|<claim id>|<kind>|<content_hash>|<prev hash or GENESIS>")

Both functions are pure so that ``AuditSelector.verify_chain`` can
recompute them from stored columns alone.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

GENESIS = "GENESIS"


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        # 500.00 and 500.0 must hash alike
        return str(value.normalize())
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, Decimal/datetime/Enum rendered as strings."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_content(
    seq: int,
    actor_id: str | None,
    kind: str,
    message: str,
    from_status: str | None,
    to_status: str | None,
    payload: dict | None,
    occurred_at: datetime,
) -> str:
    """Hash of every stored audit field except the chain links."""
    return hash_payload({
        "seq": seq,
        "actor_id": actor_id,
        "kind": kind,
        "message": message,
        "from_status": from_status,
        "to_status": to_status,
        "payload": payload or {},
        "occurred_at": occurred_at,
    })


def hash_audit_entry(
    entity_type: str,
    entity_id: int | str,
    kind: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash of one audit entry.

    Args:
        entity_type: Audited entity name ("Claim").
        entity_id: Claim id.
        kind: EventKind value.
        payload_hash: Result of ``hash_audit_content``.
        prev_hash: Previous entry's hash; None for a claim's first entry.
    """
    return _sha256(
        "|".join((entity_type, str(entity_id), kind, payload_hash, prev_hash or GENESIS))
    )
