"""
Deterministic hashing and JSON-safe snapshot utilities.

Audit entries store before/after field snapshots as JSON and chain each
entry to the previous one for the same record. Both need a single,
reproducible rendering of dates, decimals, UUIDs and enums.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID


def to_json_safe(value: Any) -> Any:
    """
    Render a field value as a JSON-compatible primitive.

    Decimals become strings (no float rounding), dates and datetimes
    ISO-8601, UUIDs strings, enums their value. Mappings and sequences
    are converted recursively. None, bool, int, float and str pass through.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return to_json_safe(value.value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, Mapping):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [to_json_safe(v) for v in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=str)
        return items
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to a canonical JSON string.

    Keys sorted, no whitespace, special types rendered via ``to_json_safe``.
    """
    return json.dumps(
        to_json_safe(data),
        sort_keys=True,
        separators=(",", ":"),
    )


def hash_payload(payload: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_entry(
    entity_kind: str,
    record_id: str,
    seq: int,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash for a lifecycle audit entry.

    The previous entry's hash (or ``GENESIS`` for the first entry of a
    record) is part of the input, so altering any earlier entry breaks
    every later hash.
    """
    components = [
        entity_kind,
        str(record_id),
        str(seq),
        payload_hash,
        prev_hash or "GENESIS",
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
