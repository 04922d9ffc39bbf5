"""Feature resolution events and the sinks that receive them.

The store notifies its sink whenever a missing record is resolved. Sinks are
fire-and-forget: nothing they do feeds back into the lookup result.
"""

from __future__ import annotations

import collections
import json
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, Union, runtime_checkable

from feature_state.utils import mask_scope_key

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievingUnknownFeature:
    """A feature without a registered resolver was resolved to ``False``."""

    feature: str
    scope: Any
    scope_key: Optional[str] = None
    ts: float = field(default_factory=time.time)

    kind = "unknown_feature"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "feature": self.feature,
            "scope_key": self.scope_key,
            "ts": self.ts,
        }


@dataclass(frozen=True)
class RetrievingKnownFeature:
    """A registered resolver computed the initial value of a feature."""

    feature: str
    scope: Any
    value: Any
    scope_key: Optional[str] = None
    ts: float = field(default_factory=time.time)

    kind = "known_feature"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "feature": self.feature,
            "scope_key": self.scope_key,
            "value": self.value,
            "ts": self.ts,
        }


FeatureEvent = Union[RetrievingUnknownFeature, RetrievingKnownFeature]


@runtime_checkable
class EventSink(Protocol):
    def dispatch(self, event: FeatureEvent) -> None:
        ...


class NullSink:
    def dispatch(self, event: FeatureEvent) -> None:  # noqa: ARG002
        return None


class LoggingSink:
    """Log each event; scope keys are masked."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._logger = logger or _log
        self._level = level

    def dispatch(self, event: FeatureEvent) -> None:
        fields: Dict[str, Any] = {
            "feature": event.feature,
            "scope_key": mask_scope_key(event.scope_key),
        }
        if isinstance(event, RetrievingKnownFeature):
            fields["value"] = event.value
        self._logger.log(self._level, "feature %s resolved", event.kind, extra=fields)


class FanoutSink:
    """Forward events to several sinks in order."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self.sinks: List[EventSink] = list(sinks)

    def dispatch(self, event: FeatureEvent) -> None:
        for sink in self.sinks:
            sink.dispatch(event)


class EventBus:
    """In-process event bus: ring buffer, optional JSONL audit log and
    subscriber queues.

    Subscribers receive ``event.as_dict()`` payloads on a ``SimpleQueue``.
    Subscriber and audit failures are logged and dropped so a broken consumer
    never fails a feature lookup.
    """

    def __init__(self, max_size: int = 2000, audit_path: Optional[str] = None) -> None:
        self._lock = threading.RLock()
        self._buf: Deque[Dict[str, Any]] = collections.deque(maxlen=max(1, int(max_size)))
        self._path = audit_path or None
        self._subscribers: set[queue.SimpleQueue[Dict[str, Any]]] = set()

    def dispatch(self, event: FeatureEvent) -> None:
        self.publish(event.as_dict())

    def publish(self, evt: Dict[str, Any]) -> None:
        with self._lock:
            evt.setdefault("ts", time.time())

            # ring buffer
            self._buf.append(evt)

            # append-only audit log
            if self._path:
                try:
                    self._append_audit(self._path, evt)
                except OSError as exc:
                    _log.warning("feature event audit write failed: %s", exc)

            # fan-out to subscribers (non-blocking)
            dead: list[queue.SimpleQueue[Dict[str, Any]]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(evt)
                except Exception as exc:
                    _log.debug("dropping feature event subscriber: %s", exc)
                    dead.append(q)
            for q in dead:
                self._subscribers.discard(q)

    @staticmethod
    def _append_audit(path: str, evt: Dict[str, Any]) -> None:
        d = os.path.dirname(path) or "."
        os.makedirs(d, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(evt, default=str) + "\n")

    def snapshot(self) -> list[Dict[str, Any]]:
        """Return a copy of the current buffer (newest last)."""
        with self._lock:
            return list(self._buf)

    def subscribe(self) -> queue.SimpleQueue[Dict[str, Any]]:
        q: queue.SimpleQueue[Dict[str, Any]] = queue.SimpleQueue()
        with self._lock:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q: queue.SimpleQueue[Dict[str, Any]]) -> None:
        with self._lock:
            self._subscribers.discard(q)

    def configure(
        self,
        *,
        audit_path: Optional[str] = None,
        max_size: Optional[int] = None,
        reset: bool = False,
    ) -> None:
        """Adjust runtime configuration (primarily for tests)."""
        with self._lock:
            if audit_path is not None:
                self._path = audit_path or None

            if max_size is not None and max_size > 0:
                # Resize buffer while preserving most-recent entries
                self._buf = collections.deque(self._buf, maxlen=int(max_size))

            if reset:
                self._buf.clear()


__all__ = [
    "EventBus",
    "EventSink",
    "FanoutSink",
    "FeatureEvent",
    "LoggingSink",
    "NullSink",
    "RetrievingKnownFeature",
    "RetrievingUnknownFeature",
]
