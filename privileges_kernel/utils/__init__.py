"""Utility modules for the privileges kernel."""

from privileges_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
    to_json_payload,
)

__all__ = [
    "hash_payload",
    "hash_audit_event",
    "canonicalize_json",
    "to_json_payload",
]
