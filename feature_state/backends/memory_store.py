"""In-memory feature backend (test/dev)."""
from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

from feature_state.backends.base import FeatureRecord, Pair, PersistenceBackend
from feature_state.errors import DuplicateRecordError


class MemoryBackend(PersistenceBackend):
    """Simple in-memory table; NOT shared across processes."""

    name = "memory"

    def __init__(self) -> None:
        self._rows: Dict[Pair, bytes] = {}
        self._mu = threading.RLock()

    def lookup_one(self, name: str, scope_key: Optional[str]) -> Optional[FeatureRecord]:
        with self._mu:
            value = self._rows.get((name, scope_key))
            if value is None:
                return None
            return FeatureRecord(name, scope_key, value)

    def lookup_many(self, pairs: Sequence[Pair]) -> List[FeatureRecord]:
        out: List[FeatureRecord] = []
        seen: set[Pair] = set()
        with self._mu:
            for pair in pairs:
                if pair in seen:
                    continue
                seen.add(pair)
                value = self._rows.get(pair)
                if value is not None:
                    out.append(FeatureRecord(pair[0], pair[1], value))
        return out

    def insert_one(self, name: str, scope_key: Optional[str], value: bytes) -> None:
        with self._mu:
            if (name, scope_key) in self._rows:
                raise DuplicateRecordError(name, scope_key)
            self._rows[(name, scope_key)] = bytes(value)

    def insert_many(self, records: Sequence[FeatureRecord]) -> None:
        with self._mu:
            # all-or-nothing, like a multi-row INSERT
            batch: set[Pair] = set()
            for record in records:
                if record.pair in self._rows or record.pair in batch:
                    raise DuplicateRecordError(record.name, record.scope_key)
                batch.add(record.pair)
            for record in records:
                self._rows[record.pair] = bytes(record.value)

    def update_one(self, name: str, scope_key: Optional[str], value: bytes) -> bool:
        with self._mu:
            if (name, scope_key) not in self._rows:
                return False
            self._rows[(name, scope_key)] = bytes(value)
            return True

    def records(self) -> List[FeatureRecord]:
        with self._mu:
            return [FeatureRecord(n, s, v) for (n, s), v in sorted(
                self._rows.items(), key=lambda item: (item[0][0], item[0][1] or "")
            )]

    def clear(self) -> None:
        with self._mu:
            self._rows.clear()

    def __len__(self) -> int:
        with self._mu:
            return len(self._rows)
