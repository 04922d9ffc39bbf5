from __future__ import annotations

import logging
from typing import List, Optional

from redis import Redis

from feature_state.backends.base import PersistenceBackend
from feature_state.backends.memory_store import MemoryBackend
from feature_state.backends.redis_store import RedisBackend
from feature_state.backends.sql_store import SqlBackend
from feature_state.errors import BackendConfigurationError
from feature_state.events import EventBus, EventSink, FanoutSink, LoggingSink
from feature_state.settings import FeatureStateSettings, get_settings
from feature_state.store import FeatureStateStore
from feature_state.telemetry.logging import bind, configure_root_logging

_log = logging.getLogger(__name__)

# Lazily initialized singletons for process lifetime.
_settings: Optional[FeatureStateSettings] = None
_backend: Optional[PersistenceBackend] = None
_bus: Optional[EventBus] = None
_store: Optional[FeatureStateStore] = None


def settings() -> FeatureStateSettings:
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings


def configure(cfg: FeatureStateSettings) -> None:
    """Install ``cfg`` and drop any singletons built from older settings."""
    global _settings
    reset_for_tests()
    _settings = cfg


def configure_logging() -> None:
    """JSON logs on the root logger at the configured level."""
    configure_root_logging(settings().log_level)


def init(cfg: Optional[FeatureStateSettings] = None) -> FeatureStateStore:
    """Process bootstrap: install settings, JSON logging, then the store."""
    if cfg is not None:
        configure(cfg)
    configure_logging()
    store = feature_store()
    bind(_log, backend=settings().backend).info("feature state initialized")
    return store


def redis_client(cfg: FeatureStateSettings) -> Redis:
    return Redis.from_url(
        cfg.redis_url,
        decode_responses=False,
        socket_timeout=cfg.redis_socket_timeout_s,
    )


def build_backend(cfg: FeatureStateSettings) -> PersistenceBackend:
    """Create the backend named by ``cfg.backend``."""
    log = bind(_log, backend=cfg.backend)
    if cfg.backend == "memory":
        log.info("feature backend ready")
        return MemoryBackend()
    if cfg.backend == "sql":
        backend = SqlBackend.from_dsn(
            cfg.dsn,
            table_name=cfg.table_name,
            autocreate=cfg.autocreate,
        )
        log.info("feature backend ready", extra={"table": cfg.table_name})
        return backend
    if cfg.backend == "redis":
        log.info("feature backend ready", extra={"namespace": cfg.redis_namespace})
        return RedisBackend(redis_client(cfg), ns=cfg.redis_namespace)
    raise BackendConfigurationError(f"unknown feature backend {cfg.backend!r}")


def backend() -> PersistenceBackend:
    global _backend
    if _backend is None:
        _backend = build_backend(settings())
    return _backend


def event_bus() -> EventBus:
    global _bus
    if _bus is None:
        cfg = settings()
        _bus = EventBus(
            max_size=cfg.events_buffer_max,
            audit_path=cfg.events_audit_path or None,
        )
    return _bus


def build_sink(cfg: FeatureStateSettings, bus: EventBus) -> EventSink:
    sinks: List[EventSink] = [bus]
    if cfg.log_events:
        sinks.append(LoggingSink())
    return sinks[0] if len(sinks) == 1 else FanoutSink(sinks)


def feature_store() -> FeatureStateStore:
    """Process-wide store built from settings."""
    global _store
    if _store is None:
        _store = FeatureStateStore(backend(), sink=build_sink(settings(), event_bus()))
    return _store


def reset_for_tests() -> None:
    global _settings, _backend, _bus, _store
    if isinstance(_backend, SqlBackend):
        _backend.dispose()
    _settings = None
    _backend = None
    _bus = None
    _store = None
