"""Lazily resolved, durably persisted feature state keyed by scope."""

from __future__ import annotations

from .backends import FeatureRecord, MemoryBackend, PersistenceBackend, RedisBackend, SqlBackend
from .errors import (
    BackendConfigurationError,
    CorruptRecordError,
    DuplicateRecordError,
    FeatureStateError,
    UnresolvableScopeError,
    UnsupportedValueError,
)
from .events import (
    EventBus,
    EventSink,
    FanoutSink,
    LoggingSink,
    NullSink,
    RetrievingKnownFeature,
    RetrievingUnknownFeature,
)
from .registry import ResolverRegistry
from .scope import EntityScope, FeatureEntity, FeatureScopeable, ScopeKeyResolver, resolve_key
from .store import FeatureStateStore

__all__ = [
    "BackendConfigurationError",
    "CorruptRecordError",
    "DuplicateRecordError",
    "EntityScope",
    "EventBus",
    "EventSink",
    "FanoutSink",
    "FeatureEntity",
    "FeatureRecord",
    "FeatureScopeable",
    "FeatureStateError",
    "FeatureStateStore",
    "LoggingSink",
    "MemoryBackend",
    "NullSink",
    "PersistenceBackend",
    "RedisBackend",
    "ResolverRegistry",
    "RetrievingKnownFeature",
    "RetrievingUnknownFeature",
    "ScopeKeyResolver",
    "SqlBackend",
    "UnresolvableScopeError",
    "UnsupportedValueError",
    "resolve_key",
]
