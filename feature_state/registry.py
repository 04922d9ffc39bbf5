from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional

Resolver = Callable[[Any], Any]


class ResolverRegistry:
    """Feature name -> initial value resolver."""

    def __init__(self, resolvers: Optional[Dict[str, Resolver]] = None) -> None:
        self._resolvers: Dict[str, Resolver] = dict(resolvers or {})

    def register(self, feature: str, resolver: Resolver) -> None:
        # Later registrations replace earlier ones.
        self._resolvers[feature] = resolver

    def get(self, feature: str) -> Optional[Resolver]:
        return self._resolvers.get(feature)

    def names(self) -> List[str]:
        return sorted(self._resolvers)

    def __contains__(self, feature: object) -> bool:
        return feature in self._resolvers

    def __len__(self) -> int:
        return len(self._resolvers)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._resolvers))
