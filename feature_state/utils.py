"""Utility helpers shared across feature state components."""

from __future__ import annotations

import hashlib
import os
from typing import Optional

_LOG_PII_OK_VALUES = {"1", "true", "yes", "on"}


def mask_scope_key(key: Optional[str]) -> Optional[str]:
    """Return a log-safe representation of ``key``.

    Scope keys usually carry user or tenant identifiers. Unless ``LOG_PII_OK``
    explicitly opts-in, the key is replaced with a short SHA-256 prefix so
    operators can correlate entries without leaking raw identifiers into logs.
    """

    if key is None:
        return None
    raw = os.environ.get("LOG_PII_OK", "").strip().lower()
    if raw in _LOG_PII_OK_VALUES:
        return key
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"hash:{digest[:16]}"
