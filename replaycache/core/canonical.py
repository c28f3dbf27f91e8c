"""
Canonical serialization for deterministic hashing.

Cache keys for partitions and chunk memos are derived from structured
descriptors, so every descriptor must go through these functions to get the
same digest regardless of key order or platform.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def canonicalize(obj: Any) -> Any:
    """
    Normalize a chunk descriptor (or result) before it is hashed or printed.

    Mapping keys become strings in sorted order, tuples become lists and
    dates become ISO-8601 text, at every nesting level. Two descriptors that
    differ only in key order normalize to equal values.
    """
    if isinstance(obj, dict):
        return {str(k): canonicalize(obj[k]) for k in sorted(obj.keys(), key=str)}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Compact JSON encoding of a normalized value, the input of memo-key digests.

    Keys are sorted and separators carry no whitespace. Non-ASCII text stays
    UTF-8 rather than being escaped.

    Returns:
        UTF-8 encoded JSON bytes
    """
    canon = canonicalize(obj)
    s = json.dumps(
        canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_json_default
    )
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    """Text form of canonical_json_bytes, for display."""
    return canonical_json_bytes(obj).decode("utf-8")


def content_hash(obj: Any) -> str:
    """
    Stable content hash of a structured value.

    Equal descriptors (after canonicalization) always produce the same key.

    Args:
        obj: JSON-compatible structure (dicts, lists, scalars, datetimes)

    Returns:
        SHA-256 hash as hex string
    """
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def dumps_record(obj: Any) -> bytes:
    """
    Serialize one raw record or chunk result for storage.

    Key order of the record is preserved. Values JSON cannot represent are
    stored as strings (datetimes as ISO-8601).
    """
    s = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    return s.encode("utf-8")


def loads_record(data: bytes) -> Any:
    """Inverse of dumps_record."""
    return json.loads(data)
