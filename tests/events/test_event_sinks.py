from __future__ import annotations

import json
import logging
from typing import Any, List

from feature_state.events import (
    EventBus,
    EventSink,
    FanoutSink,
    LoggingSink,
    NullSink,
    RetrievingKnownFeature,
    RetrievingUnknownFeature,
)


def test_event_dicts() -> None:
    unknown = RetrievingUnknownFeature("f", object(), scope_key="k", ts=1.0)
    assert unknown.as_dict() == {"event": "unknown_feature", "feature": "f", "scope_key": "k", "ts": 1.0}

    known = RetrievingKnownFeature("f", None, True, ts=2.0)
    assert known.as_dict() == {
        "event": "known_feature",
        "feature": "f",
        "scope_key": None,
        "value": True,
        "ts": 2.0,
    }


def test_sinks_satisfy_protocol() -> None:
    for sink in (NullSink(), LoggingSink(), EventBus(), FanoutSink([])):
        assert isinstance(sink, EventSink)


def test_bus_buffer_is_bounded() -> None:
    bus = EventBus(max_size=2)
    for i in range(3):
        bus.dispatch(RetrievingUnknownFeature(f"f{i}", None))
    assert [e["feature"] for e in bus.snapshot()] == ["f1", "f2"]

    bus.configure(max_size=5)
    bus.dispatch(RetrievingUnknownFeature("f3", None))
    assert [e["feature"] for e in bus.snapshot()] == ["f1", "f2", "f3"]

    bus.configure(reset=True)
    assert bus.snapshot() == []


def test_bus_fans_out_to_subscribers() -> None:
    bus = EventBus()
    q = bus.subscribe()
    bus.dispatch(RetrievingKnownFeature("f", "s", 1, scope_key="s"))
    evt = q.get_nowait()
    assert evt["feature"] == "f"
    assert evt["value"] == 1

    bus.unsubscribe(q)
    bus.dispatch(RetrievingKnownFeature("g", "s", 1, scope_key="s"))
    assert q.empty()


def test_bus_writes_audit_lines(tmp_path) -> None:
    path = tmp_path / "audit" / "features.jsonl"
    bus = EventBus(audit_path=str(path))
    bus.dispatch(RetrievingUnknownFeature("f", None))
    bus.dispatch(RetrievingKnownFeature("g", "s", {"a": 1}, scope_key="s"))

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [(x["event"], x["feature"]) for x in lines] == [
        ("unknown_feature", "f"),
        ("known_feature", "g"),
    ]


def test_bus_audit_failure_does_not_raise(tmp_path, caplog) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    bus = EventBus(audit_path=str(blocker / "nested" / "audit.jsonl"))

    with caplog.at_level(logging.WARNING, logger="feature_state.events"):
        bus.dispatch(RetrievingUnknownFeature("f", None))
    assert bus.snapshot()[0]["feature"] == "f"
    assert "audit write failed" in caplog.text


def test_logging_sink_masks_scope_key(caplog) -> None:
    sink = LoggingSink()
    with caplog.at_level(logging.INFO, logger="feature_state.events"):
        sink.dispatch(RetrievingKnownFeature("f", "u", True, scope_key="user:1"))

    (record,) = caplog.records
    assert record.feature == "f"
    assert record.scope_key.startswith("hash:")
    assert "user:1" not in record.scope_key
    assert record.value is True


def test_logging_sink_raw_keys_when_opted_in(caplog, monkeypatch) -> None:
    monkeypatch.setenv("LOG_PII_OK", "1")
    with caplog.at_level(logging.INFO, logger="feature_state.events"):
        LoggingSink().dispatch(RetrievingUnknownFeature("f", "u", scope_key="user:1"))
    assert caplog.records[0].scope_key == "user:1"


def test_fanout_preserves_order() -> None:
    seen: List[Any] = []

    class _Tap:
        def __init__(self, tag: str) -> None:
            self.tag = tag

        def dispatch(self, event: Any) -> None:
            seen.append((self.tag, event.feature))

    FanoutSink([_Tap("a"), _Tap("b")]).dispatch(RetrievingUnknownFeature("f", None))
    assert seen == [("a", "f"), ("b", "f")]


class _FullQueue:
    def put_nowait(self, item: Any) -> None:
        raise RuntimeError("queue closed")


def test_failing_subscriber_is_logged_and_dropped(caplog) -> None:
    bus = EventBus(max_size=10)
    healthy = bus.subscribe()
    broken = _FullQueue()
    bus._subscribers.add(broken)  # type: ignore[arg-type]

    with caplog.at_level(logging.DEBUG, logger="feature_state.events"):
        bus.dispatch(RetrievingUnknownFeature("f", None))
        bus.dispatch(RetrievingUnknownFeature("g", None))

    assert broken not in bus._subscribers
    assert [r.getMessage() for r in caplog.records].count(
        "dropping feature event subscriber: queue closed"
    ) == 1
    assert healthy.get_nowait()["feature"] == "f"
    assert healthy.get_nowait()["feature"] == "g"
