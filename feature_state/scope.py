"""Scope normalization.

Every scope handed to the store is reduced to a *scope key*: ``None`` for
global features, otherwise a string that is stable for the same logical
entity. Resolution is a priority chain:

1. ``None``                      -> ``None``
2. :class:`FeatureScopeable`     -> ``str(scope.to_feature_scope_identifier())``
3. entity-like scopes            -> ``"<kind>:<id>"``
   (:class:`FeatureEntity` implementations and persistent SQLAlchemy ORM
   instances)
4. anything else                 -> ``str(scope)``

Opaque scopes stringify, so ``5`` and ``"5"`` share the key ``"5"``. The
same holds across steps: the string ``"user:4"`` gets the key of
``EntityScope("user", 4)``. Stringifying also follows ``str()`` exactly, so
two equal dicts built in a different insertion order get different keys.
Use an entity or self-identifying scope when those cases matter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState

from feature_state.errors import UnresolvableScopeError

ScopeKey = Optional[str]


@runtime_checkable
class FeatureScopeable(Protocol):
    """Scope types that know their own storage identity."""

    def to_feature_scope_identifier(self) -> Any:
        ...


@runtime_checkable
class FeatureEntity(Protocol):
    """Scope types identified by a kind and an id within that kind."""

    @property
    def feature_scope_kind(self) -> str:
        ...

    @property
    def feature_scope_id(self) -> Any:
        ...


@dataclass(frozen=True)
class EntityScope:
    """Plain entity reference, e.g. ``EntityScope("user", 42)``."""

    kind: str
    id: Any

    @property
    def feature_scope_kind(self) -> str:
        return self.kind

    @property
    def feature_scope_id(self) -> Any:
        return self.id


def _orm_state(scope: Any) -> Optional[InstanceState[Any]]:
    state = sa_inspect(scope, raiseerr=False)
    if isinstance(state, InstanceState):
        return state
    return None


def _orm_key(state: InstanceState[Any]) -> str:
    identity = state.identity
    if identity is None:
        raise UnresolvableScopeError(
            f"{state.class_.__name__} instance has no persistent identity; "
            "flush it before using it as a feature scope"
        )
    table = getattr(state.mapper.local_table, "name", None) or state.class_.__name__
    ident = ",".join(str(part) for part in identity)
    return f"{table}:{ident}"


class ScopeKeyResolver:
    """Turns scope values into storage keys."""

    def resolve_key(self, scope: Any) -> ScopeKey:
        if scope is None:
            return None

        if isinstance(scope, FeatureScopeable):
            return str(scope.to_feature_scope_identifier())

        if isinstance(scope, FeatureEntity):
            return f"{scope.feature_scope_kind}:{scope.feature_scope_id}"

        state = _orm_state(scope)
        if state is not None:
            return _orm_key(state)

        return str(scope)

    __call__ = resolve_key


_default_resolver = ScopeKeyResolver()


def resolve_key(scope: Any) -> ScopeKey:
    return _default_resolver.resolve_key(scope)


__all__ = [
    "EntityScope",
    "FeatureEntity",
    "FeatureScopeable",
    "ScopeKey",
    "ScopeKeyResolver",
    "resolve_key",
]
