"""JSON log lines for feature state.

Each line carries ``ts``, ``level``, ``logger`` and ``message``, then the
feature context (``feature``, ``scope_key``, ``backend``) when the record
has it, then any other ``extra=`` fields. Callers pass scope keys already
masked with :func:`feature_state.utils.mask_scope_key`.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, TextIO, Tuple

# Feature context first, in this order, when present on the record.
CONTEXT_FIELDS: Tuple[str, ...] = ("feature", "scope_key", "backend")

# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_handler: Optional[logging.Handler] = None


def _utc_ts(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _fallback(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_ts(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = record.__dict__
        for key in CONTEXT_FIELDS:
            if key in fields:
                payload[key] = fields[key]
        for key, value in fields.items():
            if key not in _RECORD_ATTRS and key not in payload and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=_fallback)


def configure_root_logging(
    level: int | str = "INFO",
    *,
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """Install one JSON handler on the root logger.

    A no-op while the handler from an earlier call is still attached, unless
    ``force`` is set.
    """
    global _handler
    root = logging.getLogger()
    if _handler is not None and _handler in root.handlers and not force:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)
    _handler = logging.StreamHandler(stream or sys.stdout)
    _handler.setFormatter(JsonFormatter())
    root.addHandler(_handler)


class ContextAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Adds bound fields to every record; per-call ``extra`` wins on clashes."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def bind(logger: logging.Logger | None = None, **context: Any) -> ContextAdapter:
    """``bind(logging.getLogger(__name__), backend="sql").info("ready")``"""
    return ContextAdapter(logger or logging.getLogger("feature_state"), context)
