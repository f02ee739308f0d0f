"""Content fingerprints for cache validity checks.

A fingerprint is a short base-36 string derived from the sorted,
canonicalized session records (or a summary). It only detects equality;
it is not a security primitive and collisions merely cost an unnecessary
cache hit.

Example:
    >>> hash_sessions([])
    'empty-set'
    >>> hash_sessions(records) == hash_sessions(list(reversed(records)))
    True
"""

import json
from dataclasses import asdict, is_dataclass
from typing import Iterable

# Hyphen is outside the base-36 alphabet, so no digest can equal this.
EMPTY_FINGERPRINT = "empty-set"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _rolling_hash(text: str) -> str:
    """32-bit ``h * 31 + c`` string hash rendered in base 36."""
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def _field(record, name):
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def hash_sessions(records: Iterable) -> str:
    """Fingerprint a set of session records, independent of input order.

    Covers each record's id, activity type, duration and creation time.
    Records may be SessionRecord instances or ``sessions`` row dicts.

    Args:
        records: Session records to cover.

    Returns:
        Base-36 digest, or EMPTY_FINGERPRINT for no records.
    """
    parts = sorted(
        f"{_field(r, 'id')}:{_field(r, 'activity_type')}:"
        f"{_field(r, 'duration')}:{_field(r, 'created_at')}"
        for r in records
    )
    if not parts:
        return EMPTY_FINGERPRINT
    return _rolling_hash("|".join(parts))


def hash_summary(summary) -> str:
    """Fingerprint an aggregated summary via its canonical JSON form."""
    data = asdict(summary) if is_dataclass(summary) else summary
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return _rolling_hash(canonical)


def hashes_match(first: str, second: str) -> bool:
    return first == second
