"""
Canonical JSON and SHA-256 helpers for the audit chain.

Payloads are serialized with sorted keys and no whitespace so the same
content always hashes the same way, whatever the dict ordering.
"""

import hashlib
import json
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _encode_extra(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):  # datetime included
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_extra)


def to_json_payload(data: dict) -> dict:
    """Reduce ``data`` to plain JSON types, as it will read back from storage."""
    return json.loads(canonicalize_json(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash of one audit event.

    Folding in ``prev_hash`` means editing any earlier event invalidates
    every hash after it.  The first event links to ``GENESIS_MARKER``.
    """
    return _sha256(
        "|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS_MARKER))
    )
