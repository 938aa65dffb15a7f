"""
Fingerprint — stable digest of the outcome-relevant part of a payload.

Two payloads that would produce the same outcome must hash identically across
processes and restarts, so the payload is serialized canonically (sorted keys,
compact separators, UTF-8) before hashing.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable, Mapping
from typing import Any

type FingerprintFn[P] = Callable[[P], str]


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def fingerprint(payload: Mapping[str, Any]) -> str:
    """
    SHA-256 hex digest of the canonical JSON form.

    Example:
        fingerprint({"productId": "P1", "quantity": 2, "customerId": "C1"})
    """
    return hashlib.sha256(canonical_json(payload)).hexdigest()


__all__ = ("FingerprintFn", "canonical_json", "fingerprint")
