"""Persistence backend interface and record container."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

Pair = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class FeatureRecord:
    """Stored feature state. ``value`` is an opaque serialized blob."""

    name: str
    scope_key: Optional[str]
    value: bytes

    @property
    def pair(self) -> Pair:
        return (self.name, self.scope_key)


@runtime_checkable
class PersistenceBackend(Protocol):
    """Durable table of feature records keyed by ``(name, scope_key)``.

    Implementations must keep at most one record per pair; inserting an
    existing pair raises. No atomicity is promised across calls.
    """

    def lookup_one(self, name: str, scope_key: Optional[str]) -> Optional[FeatureRecord]:
        """Return the record for the pair, or None."""

    def lookup_many(self, pairs: Sequence[Pair]) -> List[FeatureRecord]:
        """Return the existing records among ``pairs``; missing pairs are absent."""

    def insert_one(self, name: str, scope_key: Optional[str], value: bytes) -> None:
        ...

    def insert_many(self, records: Sequence[FeatureRecord]) -> None:
        ...

    def update_one(self, name: str, scope_key: Optional[str], value: bytes) -> bool:
        """Replace the stored value. True iff an existing record was modified."""
