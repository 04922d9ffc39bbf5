"""Feature state settings.

Values come from the environment (or keyword overrides). ``effective()``
applies per-environment adjustments on top of the raw values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, cast, overload

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AppEnv = Literal["dev", "stage", "prod", "test"]
BackendName = Literal["memory", "sql", "redis"]

_DEFAULT_BACKEND: BackendName = "memory"
_DEFAULT_DSN = "sqlite:///./data/features.db"
_DEFAULT_TABLE = "features"
_DEFAULT_REDIS_URL = "redis://localhost:6379/0"
_DEFAULT_REDIS_NAMESPACE = "features"
_DEFAULT_EVENTS_BUFFER_MAX = 2000


class FeatureStateSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", populate_by_name=True)

    env: AppEnv = Field(
        "dev",
        validation_alias=AliasChoices("APP_ENV"),
    )
    backend: BackendName = Field(
        _DEFAULT_BACKEND,
        validation_alias=AliasChoices("FEATURE_STORE_BACKEND"),
    )
    dsn: str = Field(
        _DEFAULT_DSN,
        validation_alias=AliasChoices("FEATURE_STORE_DSN"),
    )
    table_name: str = Field(
        _DEFAULT_TABLE,
        min_length=1,
        validation_alias=AliasChoices("FEATURE_STORE_TABLE"),
    )
    autocreate: bool = Field(
        True,
        validation_alias=AliasChoices("FEATURE_STORE_AUTOCREATE"),
    )
    redis_url: str = Field(
        _DEFAULT_REDIS_URL,
        validation_alias=AliasChoices("FEATURE_STORE_REDIS_URL"),
    )
    redis_namespace: str = Field(
        _DEFAULT_REDIS_NAMESPACE,
        min_length=1,
        validation_alias=AliasChoices("FEATURE_STORE_REDIS_NAMESPACE"),
    )
    redis_socket_timeout_s: float = Field(
        2.5,
        gt=0.0,
        le=60.0,
        validation_alias=AliasChoices("FEATURE_STORE_REDIS_SOCKET_TIMEOUT_S"),
    )
    events_buffer_max: int = Field(
        _DEFAULT_EVENTS_BUFFER_MAX,
        ge=1,
        le=1_000_000,
        validation_alias=AliasChoices("FEATURE_EVENTS_BUFFER_MAX"),
    )
    events_audit_path: str = Field(
        "",
        validation_alias=AliasChoices("FEATURE_EVENTS_AUDIT_PATH"),
    )
    log_events: bool = Field(
        True,
        validation_alias=AliasChoices("FEATURE_LOG_EVENTS"),
    )
    log_level: str = Field(
        "INFO",
        validation_alias=AliasChoices("FEATURE_LOG_LEVEL"),
    )

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    def effective(self) -> "FeatureStateSettings":
        eff = self.model_copy(deep=True)
        if eff.env == "prod":
            # schema is owned by migrations in production
            eff.autocreate = False
        elif eff.env == "test":
            eff.log_events = False
        return eff


if TYPE_CHECKING:

    def _load_settings(**data: Any) -> FeatureStateSettings: ...
else:

    def _load_settings(**data: Any) -> FeatureStateSettings:
        return FeatureStateSettings(**data)


@overload
def get_settings(env: AppEnv, **overrides: Any) -> FeatureStateSettings: ...


@overload
def get_settings(env: None = ..., **overrides: Any) -> FeatureStateSettings: ...


def get_settings(env: str | None = None, **overrides: Any) -> FeatureStateSettings:
    if env is not None:
        lit = cast(AppEnv, env)
        return _load_settings(env=lit, **overrides).effective()
    return _load_settings(**overrides).effective()


__all__ = ["FeatureStateSettings", "get_settings"]
