# tests/conftest.py
from __future__ import annotations

import sys
from collections import Counter
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from feature_state import runtime  # noqa: E402
from feature_state.backends.base import FeatureRecord, Pair  # noqa: E402
from feature_state.backends.memory_store import MemoryBackend  # noqa: E402
from feature_state.events import EventBus  # noqa: E402
from feature_state.store import FeatureStateStore  # noqa: E402


class RecordingBackend:
    """Wraps a backend and counts calls per method."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.calls: Counter[str] = Counter()
        self.lookups: List[List[Pair]] = []
        self.inserted: List[List[FeatureRecord]] = []

    def lookup_one(self, name: str, scope_key: Optional[str]) -> Optional[FeatureRecord]:
        self.calls["lookup_one"] += 1
        return self.inner.lookup_one(name, scope_key)

    def lookup_many(self, pairs: Sequence[Pair]) -> List[FeatureRecord]:
        self.calls["lookup_many"] += 1
        self.lookups.append(list(pairs))
        return self.inner.lookup_many(pairs)

    def insert_one(self, name: str, scope_key: Optional[str], value: bytes) -> None:
        self.calls["insert_one"] += 1
        self.inner.insert_one(name, scope_key, value)

    def insert_many(self, records: Sequence[FeatureRecord]) -> None:
        self.calls["insert_many"] += 1
        self.inserted.append(list(records))
        self.inner.insert_many(records)

    def update_one(self, name: str, scope_key: Optional[str], value: bytes) -> bool:
        self.calls["update_one"] += 1
        return self.inner.update_one(name, scope_key, value)

    def reset_calls(self) -> None:
        self.calls.clear()
        self.lookups.clear()
        self.inserted.clear()


@pytest.fixture(autouse=True)
def _reset_runtime(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("LOG_PII_OK", raising=False)
    runtime.reset_for_tests()
    yield
    runtime.reset_for_tests()


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def recording(memory_backend: MemoryBackend) -> RecordingBackend:
    return RecordingBackend(memory_backend)


@pytest.fixture
def bus() -> EventBus:
    return EventBus(max_size=100)


@pytest.fixture
def store(recording: RecordingBackend, bus: EventBus) -> FeatureStateStore:
    return FeatureStateStore(recording, sink=bus)  # type: ignore[arg-type]
