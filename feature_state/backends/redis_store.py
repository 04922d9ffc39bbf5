"""Redis-backed feature table.

Layout: one hash per feature, ``<ns>:<feature name>``. Hash fields encode the
scope key: ``"n"`` for the global (``None``) scope and ``"s:<key>"`` otherwise,
so an empty-string scope never collides with the global one.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, cast

from redis import Redis

from feature_state.backends.base import FeatureRecord, Pair, PersistenceBackend
from feature_state.errors import DuplicateRecordError
from feature_state.metrics import backend_timer

_NULL_FIELD = "n"
_SCOPE_PREFIX = "s:"

# Lua: replace a field only when it already exists.
_UPDATE_IF_EXISTS_LUA = """
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 1 then
  redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
  return 1
end
return 0
"""

# Lua: insert every (key, field) only if none of them exist yet.
# Returns 0 on success or the 1-based index of the first conflicting record.
_INSERT_ALL_ABSENT_LUA = """
for i = 1, #KEYS do
  if redis.call('HEXISTS', KEYS[i], ARGV[2 * i - 1]) == 1 then
    return i
  end
end
for i = 1, #KEYS do
  redis.call('HSET', KEYS[i], ARGV[2 * i - 1], ARGV[2 * i])
end
return 0
"""


def _field(scope_key: Optional[str]) -> str:
    return _NULL_FIELD if scope_key is None else _SCOPE_PREFIX + scope_key


class RedisBackend(PersistenceBackend):
    """Feature table on Redis hashes; writes are single Lua/HSETNX calls."""

    name = "redis"

    def __init__(self, redis: Redis, ns: str = "features") -> None:
        self.r = redis
        self.ns = ns

    def _k(self, name: str) -> str:
        return f"{self.ns}:{name}"

    def _eval(self, script: str, numkeys: int, *args: Any) -> Any:
        """Typed wrapper to satisfy mypy on redis-py's .eval return type."""
        return cast(Any, self.r).eval(script, numkeys, *args)

    @staticmethod
    def _blob(raw: Any) -> bytes:
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return bytes(raw)

    def lookup_one(self, name: str, scope_key: Optional[str]) -> Optional[FeatureRecord]:
        with backend_timer(self.name, "lookup_one"):
            raw = self.r.hget(self._k(name), _field(scope_key))
        if raw is None:
            return None
        return FeatureRecord(name, scope_key, self._blob(raw))

    def lookup_many(self, pairs: Sequence[Pair]) -> List[FeatureRecord]:
        distinct: List[Pair] = list(dict.fromkeys(pairs))
        if not distinct:
            return []
        with backend_timer(self.name, "lookup_many"):
            pipe = self.r.pipeline(transaction=False)
            for name, scope_key in distinct:
                pipe.hget(self._k(name), _field(scope_key))
            values = pipe.execute()
        return [
            FeatureRecord(name, scope_key, self._blob(raw))
            for (name, scope_key), raw in zip(distinct, values)
            if raw is not None
        ]

    def insert_one(self, name: str, scope_key: Optional[str], value: bytes) -> None:
        with backend_timer(self.name, "insert_one"):
            created = self.r.hsetnx(self._k(name), _field(scope_key), value)
        if not created:
            raise DuplicateRecordError(name, scope_key)

    def insert_many(self, records: Sequence[FeatureRecord]) -> None:
        if not records:
            return
        seen: set[Pair] = set()
        for record in records:
            if record.pair in seen:
                raise DuplicateRecordError(record.name, record.scope_key)
            seen.add(record.pair)

        keys = [self._k(r.name) for r in records]
        argv: List[Any] = []
        for r in records:
            argv.extend((_field(r.scope_key), r.value))
        with backend_timer(self.name, "insert_many"):
            conflict = int(self._eval(_INSERT_ALL_ABSENT_LUA, len(keys), *keys, *argv) or 0)
        if conflict:
            bad = records[conflict - 1]
            raise DuplicateRecordError(bad.name, bad.scope_key)

    def update_one(self, name: str, scope_key: Optional[str], value: bytes) -> bool:
        with backend_timer(self.name, "update_one"):
            changed = self._eval(_UPDATE_IF_EXISTS_LUA, 1, self._k(name), _field(scope_key), value)
        return int(changed or 0) == 1


__all__ = ["RedisBackend"]
