"""Lazy resolve-and-persist feature state store.

``get`` and ``load`` read the backend first. A missing record is resolved
through the registered resolver (or defaults to ``False`` for unknown
features), announced to the event sink and written back so the next lookup
is a plain read. Values that would not survive storage unchanged are rejected
with ``UnsupportedValueError`` before anything is written.

The miss path is check-then-act with no locking: two callers racing on the
first access to the same pair may both resolve, and the second insert fails
with the backend's uniqueness error. Backend errors are never caught here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from feature_state import metrics, serialization
from feature_state.backends.base import FeatureRecord, Pair, PersistenceBackend
from feature_state.errors import CorruptRecordError
from feature_state.events import (
    EventSink,
    NullSink,
    RetrievingKnownFeature,
    RetrievingUnknownFeature,
)
from feature_state.registry import Resolver, ResolverRegistry
from feature_state.scope import ScopeKey, ScopeKeyResolver
from feature_state.utils import mask_scope_key

_log = logging.getLogger(__name__)

DEFAULT_UNKNOWN_VALUE = False


class FeatureStateStore:
    def __init__(
        self,
        backend: PersistenceBackend,
        *,
        registry: Optional[ResolverRegistry] = None,
        sink: Optional[EventSink] = None,
        scope_resolver: Optional[ScopeKeyResolver] = None,
    ) -> None:
        self.backend = backend
        self.registry = registry if registry is not None else ResolverRegistry()
        self.sink: EventSink = sink if sink is not None else NullSink()
        self.scope_resolver = scope_resolver or ScopeKeyResolver()

    # ------------------------------------------------------------------ API

    def register(self, feature: str, resolver: Resolver) -> None:
        """Register the initial value resolver for ``feature``."""
        self.registry.register(feature, resolver)

    def resolve_key(self, scope: Any) -> ScopeKey:
        return self.scope_resolver.resolve_key(scope)

    def get(self, feature: str, scope: Any = None) -> Any:
        """Return the stored value, resolving and persisting it on a miss."""
        key = self.resolve_key(scope)
        record = self.backend.lookup_one(feature, key)
        if record is not None:
            metrics.inc_lookup("get", "hit")
            return self._decode(record)

        metrics.inc_lookup("get", "miss")
        record = self._encode(feature, key, self._resolve_value(feature, scope, key))
        self.backend.insert_one(feature, key, record.value)
        metrics.inc_write("insert_one")
        _log.debug(
            "feature record created",
            extra={"feature": feature, "scope_key": mask_scope_key(key)},
        )
        return self._decode(record)

    def set(self, feature: str, scope: Any, value: Any) -> None:
        """Store ``value`` for the pair, creating the record if needed."""
        key = self.resolve_key(scope)
        blob = serialization.dumps(value)
        if self.backend.update_one(feature, key, blob):
            metrics.inc_write("update_one")
            return
        self.backend.insert_one(feature, key, blob)
        metrics.inc_write("insert_one")

    def load(self, request: Mapping[str, Sequence[Any]]) -> Dict[str, List[Any]]:
        """Batched ``get``: one backend lookup and at most one insert.

        Output lists line up with the input scope lists. Repeated pairs
        (including distinct scope objects with the same key) are looked up,
        resolved and inserted once and share the value.
        """
        if not request:
            return {}

        keyed: List[Tuple[str, List[Tuple[Any, ScopeKey]]]] = []
        pairs: Dict[Pair, None] = {}
        for feature, scopes in request.items():
            entries = [(scope, self.resolve_key(scope)) for scope in scopes]
            keyed.append((feature, entries))
            for _, key in entries:
                pairs.setdefault((feature, key), None)

        if not pairs:
            return {feature: [] for feature, _ in keyed}

        found: Dict[Pair, FeatureRecord] = {}
        for record in self.backend.lookup_many(list(pairs)):
            # first row wins if a backend ever returns duplicates
            found.setdefault(record.pair, record)

        values: Dict[Pair, Any] = {}
        inserts: List[FeatureRecord] = []
        results: Dict[str, List[Any]] = {}
        for feature, entries in keyed:
            out: List[Any] = []
            for scope, key in entries:
                pair = (feature, key)
                if pair not in values:
                    record = found.get(pair)
                    if record is not None:
                        values[pair] = self._decode(record)
                    else:
                        fresh = self._encode(feature, key, self._resolve_value(feature, scope, key))
                        values[pair] = self._decode(fresh)
                        inserts.append(fresh)
                out.append(values[pair])
            results[feature] = out

        metrics.inc_lookup("load", "hit", len(pairs) - len(inserts))
        metrics.inc_lookup("load", "miss", len(inserts))
        if inserts:
            self.backend.insert_many(inserts)
            metrics.inc_write("insert_many", len(inserts))
            _log.debug("feature records created", extra={"count": len(inserts)})

        return results

    # ------------------------------------------------------------- internals

    def _resolve_value(self, feature: str, scope: Any, key: ScopeKey) -> Any:
        resolver = self.registry.get(feature)
        if resolver is None:
            metrics.inc_resolution("unknown")
            self.sink.dispatch(RetrievingUnknownFeature(feature, scope, scope_key=key))
            return DEFAULT_UNKNOWN_VALUE

        value = resolver(scope)
        metrics.inc_resolution("known")
        self.sink.dispatch(RetrievingKnownFeature(feature, scope, value, scope_key=key))
        return value

    @staticmethod
    def _encode(feature: str, key: ScopeKey, value: Any) -> FeatureRecord:
        return FeatureRecord(feature, key, serialization.dumps(value))

    def _decode(self, record: FeatureRecord) -> Any:
        # miss paths decode their fresh blob too, so first and later reads agree
        try:
            return serialization.loads(record.value, name=record.name, scope_key=record.scope_key)
        except CorruptRecordError:
            metrics.inc_corrupt()
            _log.warning(
                "corrupt feature record",
                extra={"feature": record.name, "scope_key": mask_scope_key(record.scope_key)},
            )
            raise


__all__ = ["FeatureStateStore", "DEFAULT_UNKNOWN_VALUE"]
