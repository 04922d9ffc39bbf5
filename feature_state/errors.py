"""Exception types raised by the feature state store and its backends."""

from __future__ import annotations

from typing import Optional


class FeatureStateError(Exception):
    """Base class for feature state failures."""


class CorruptRecordError(FeatureStateError):
    """A stored value could not be decoded."""

    def __init__(self, name: str, scope_key: Optional[str], reason: str = "") -> None:
        self.name = name
        self.scope_key = scope_key
        self.reason = reason
        detail = f"corrupt feature record name={name!r} scope={scope_key!r}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)


class DuplicateRecordError(FeatureStateError):
    """Insert attempted for a (name, scope) pair that already has a record."""

    def __init__(self, name: str, scope_key: Optional[str]) -> None:
        self.name = name
        self.scope_key = scope_key
        super().__init__(f"feature record already exists name={name!r} scope={scope_key!r}")


class UnresolvableScopeError(FeatureStateError, ValueError):
    """Scope value has no stable identity to key records by."""


class UnsupportedValueError(FeatureStateError):
    """Value cannot be serialized for storage."""


class BackendConfigurationError(FeatureStateError):
    """Configured backend is unknown or missing its settings."""


__all__ = [
    "FeatureStateError",
    "CorruptRecordError",
    "DuplicateRecordError",
    "UnresolvableScopeError",
    "UnsupportedValueError",
    "BackendConfigurationError",
]
