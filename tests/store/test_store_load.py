from __future__ import annotations

from typing import Any, List

from feature_state.scope import EntityScope
from feature_state.store import FeatureStateStore


def _user(i: int) -> EntityScope:
    return EntityScope("user", i)


def _register_dark_mode(store: FeatureStateStore, calls: List[Any]) -> None:
    def resolver(scope: Any) -> bool:
        calls.append(scope)
        return scope.id % 2 == 0

    store.register("dark-mode", resolver)


def test_load_after_get_inserts_only_missing(store: FeatureStateStore, recording) -> None:
    calls: List[Any] = []
    _register_dark_mode(store, calls)
    assert store.get("dark-mode", _user(4)) is True
    recording.reset_calls()

    result = store.load({"dark-mode": [_user(4), _user(5)]})

    assert result == {"dark-mode": [True, False]}
    assert recording.calls["lookup_many"] == 1
    assert recording.calls["insert_many"] == 1
    assert recording.calls["lookup_one"] == 0
    assert recording.calls["insert_one"] == 0
    (batch,) = recording.inserted
    assert [(r.name, r.scope_key) for r in batch] == [("dark-mode", "user:5")]
    assert len(calls) == 2


def test_load_matches_individual_gets(memory_backend, recording, bus) -> None:
    store = FeatureStateStore(recording, sink=bus)
    store.register("f1", lambda scope: f"f1-{scope}")
    store.register("f2", lambda scope: len(str(scope)))

    batched = store.load({"f1": ["a", "bb"], "f2": ["a"]})
    assert recording.calls["lookup_many"] == 1
    assert recording.calls["insert_many"] == 1

    single = FeatureStateStore(memory_backend)
    single.register("f1", lambda scope: "unused")
    single.register("f2", lambda scope: "unused")
    assert batched == {
        "f1": [single.get("f1", "a"), single.get("f1", "bb")],
        "f2": [single.get("f2", "a")],
    }
    assert batched == {"f1": ["f1-a", "f1-bb"], "f2": [1]}


def test_load_all_hits_skips_insert(store: FeatureStateStore, recording) -> None:
    store.set("f", "a", 1)
    store.set("f", "b", 2)
    recording.reset_calls()

    assert store.load({"f": ["b", "a"]}) == {"f": [2, 1]}
    assert recording.calls["lookup_many"] == 1
    assert recording.calls["insert_many"] == 0


def test_load_duplicates_resolve_and_insert_once(store: FeatureStateStore, recording) -> None:
    calls: List[Any] = []
    _register_dark_mode(store, calls)

    result = store.load({"dark-mode": [_user(2), _user(3), _user(2), _user(2)]})

    assert result == {"dark-mode": [True, False, True, True]}
    assert len(calls) == 2
    assert recording.lookups == [[("dark-mode", "user:2"), ("dark-mode", "user:3")]]
    (batch,) = recording.inserted
    assert sorted(r.scope_key for r in batch) == ["user:2", "user:3"]


def test_load_distinct_objects_with_same_key(store: FeatureStateStore, recording) -> None:
    calls: List[Any] = []
    store.register("f", lambda scope: calls.append(scope) or "v")

    # 7 and "7" normalize to the same key
    assert store.load({"f": [7, "7"]}) == {"f": ["v", "v"]}
    assert len(calls) == 1
    assert len(recording.inserted[0]) == 1


def test_load_same_scope_different_features(store: FeatureStateStore, recording) -> None:
    store.register("a", lambda scope: "A")
    store.register("b", lambda scope: "B")

    assert store.load({"a": ["s"], "b": ["s"]}) == {"a": ["A"], "b": ["B"]}
    (batch,) = recording.inserted
    assert {(r.name, r.scope_key) for r in batch} == {("a", "s"), ("b", "s")}


def test_load_unknown_feature_events(store: FeatureStateStore, bus) -> None:
    assert store.load({"ghost": ["x", "x", None]}) == {"ghost": [False, False, False]}
    events = [e for e in bus.snapshot() if e["event"] == "unknown_feature"]
    assert [e["scope_key"] for e in events] == ["x", None]


def test_load_empty_request_touches_nothing(store: FeatureStateStore, recording) -> None:
    assert store.load({}) == {}
    assert store.load({"f": []}) == {"f": []}
    assert sum(recording.calls.values()) == 0


def test_load_preserves_feature_order_and_empty_lists(store: FeatureStateStore) -> None:
    store.register("x", lambda scope: 1)
    result = store.load({"z": [], "x": ["s"]})
    assert list(result) == ["z", "x"]
    assert result == {"z": [], "x": [1]}


def test_load_then_get_hits(store: FeatureStateStore, recording) -> None:
    calls: List[Any] = []
    _register_dark_mode(store, calls)
    store.load({"dark-mode": [_user(8)]})
    recording.reset_calls()

    assert store.get("dark-mode", _user(8)) is True
    assert recording.calls["insert_one"] == 0
    assert len(calls) == 1
