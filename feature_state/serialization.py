"""Value codec for stored feature state.

Values are written as compact UTF-8 JSON. The encoding is private to this
package; callers only ever see decoded Python values.

Only values that decode back to an equal value are accepted: ``None``,
``bool``, ``int``, finite ``float``, ``str``, lists and dicts with ``str``
keys, nested freely. Tuples, sets and non-``str`` dict keys would come back
changed, so ``dumps`` rejects them with :class:`UnsupportedValueError`.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from feature_state.errors import CorruptRecordError, UnsupportedValueError

_SCALARS = (str, int, float, bool, type(None))


def _check(value: Any, path: str) -> None:
    if isinstance(value, _SCALARS):
        return
    if type(value) is list:
        for i, item in enumerate(value):
            _check(item, f"{path}[{i}]")
        return
    if type(value) is dict:
        for k, item in value.items():
            if not isinstance(k, str):
                raise UnsupportedValueError(
                    f"feature value key {k!r} at {path} is {type(k).__name__}, not str"
                )
            _check(item, f"{path}[{k!r}]")
        return
    raise UnsupportedValueError(
        f"feature value of type {type(value).__name__} at {path} does not round-trip"
    )


def dumps(value: Any) -> bytes:
    _check(value, "$")
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise UnsupportedValueError(
            f"feature value of type {type(value).__name__} is not serializable: {exc}"
        ) from exc
    return text.encode("utf-8")


def loads(blob: Any, *, name: str, scope_key: Optional[str]) -> Any:
    """Decode ``blob`` or raise :class:`CorruptRecordError` for the record."""
    if isinstance(blob, memoryview):
        blob = blob.tobytes()
    if isinstance(blob, str):
        blob = blob.encode("utf-8")
    if not isinstance(blob, (bytes, bytearray)):
        raise CorruptRecordError(name, scope_key, f"unexpected blob type {type(blob).__name__}")
    try:
        return json.loads(bytes(blob).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CorruptRecordError(name, scope_key, str(exc)) from exc
