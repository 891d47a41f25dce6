"""Helpers for safe debug logging.

Hosted routing gateways authenticate with API keys, either as a header or
as a query parameter of the base URL. Both are masked before request
details reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SECRET_NAMES: frozenset[str] = frozenset(
    {"authorization", "api_key", "apikey", "key", "access_token", "token", "cookie", "x-api-key"}
)
_MASK = "<redacted>"
_MAX_DEPTH = 10


def _is_secret(name: object) -> bool:
    return str(name).lower() in _SECRET_NAMES


def redact_for_log(value: Any, *, max_string: int = 256) -> Any:
    """Return a copy of *value* with secrets masked and long strings cut."""

    def _walk(item: Any, depth: int) -> Any:
        if depth > _MAX_DEPTH:
            return "<max-depth>"
        if item is None or isinstance(item, bool | int | float):
            return item
        if isinstance(item, str):
            return item if len(item) <= max_string else f"{item[:max_string]}…<truncated>"
        if isinstance(item, Mapping):
            return {str(k): _MASK if _is_secret(k) else _walk(v, depth + 1) for k, v in item.items()}
        if isinstance(item, Sequence) and not isinstance(item, bytes | bytearray):
            return [_walk(v, depth + 1) for v in item]
        return repr(item)

    return _walk(value, 0)


def redact_url(url: str) -> str:
    """Mask secret query parameters of *url*."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [(k, _MASK if _is_secret(k) else v) for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="<>")))
