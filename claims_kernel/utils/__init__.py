"""Utility functions for the claims kernel."""

from claims_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_content,
    hash_audit_entry,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_content",
    "hash_audit_entry",
    "hash_payload",
]
