"""Decoding of raw tool payloads.

A payload is either bare text, taken as the tool's primary field, or a JSON
object with named fields and aliases. Every failure raises InvalidPayload;
callers turn it into an `error: invalid payload (...)` result.
"""

from __future__ import annotations

import json
from typing import Any

WHITESPACE = " \t\r\n"

_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


class InvalidPayload(ValueError):
    """`usage`, when set, replaces the tool's usage text in the error result."""

    def __init__(self, message: str = "", *, usage: str | None = None):
        super().__init__(message)
        self.usage = usage


def trim(text: str) -> str:
    return text.strip(WHITESPACE)


def strip_outer_quotes(text: str) -> str:
    """Drop one pair of matching outer quotes, unless the quote also occurs inside."""
    if len(text) < 2:
        return text
    for q in ('"', "'"):
        if text[0] == q and text[-1] == q and q not in text[1:-1]:
            return text[1:-1]
    return text


def decode_payload(raw: str, *, primary: str | None, bare: bool = True) -> dict[str, Any]:
    """Return the payload as a field dict.

    Bare text becomes `{primary: text}` when `bare` is allowed.
    """
    trimmed = trim(raw or "")
    if not trimmed:
        raise InvalidPayload("empty payload")

    if not trimmed.startswith("{"):
        if not bare or primary is None:
            raise InvalidPayload("expected a JSON object")
        return {primary: strip_outer_quotes(trimmed)}

    try:
        obj = json.loads(trimmed)
    except json.JSONDecodeError as e:
        raise InvalidPayload(f"malformed JSON: {e.msg}") from e
    if not isinstance(obj, dict):
        raise InvalidPayload("expected a JSON object")
    return obj


def _first_present(obj: dict[str, Any], keys: tuple[str, ...]) -> tuple[str | None, Any]:
    for k in keys:
        if k in obj:
            return k, obj[k]
    return None, None


def field_str(obj: dict[str, Any], *keys: str, required: bool = False, default: str | None = None) -> str | None:
    key, value = _first_present(obj, keys)
    if key is None:
        if required:
            raise InvalidPayload(f"missing field: {keys[0]}")
        return default
    if not isinstance(value, str):
        raise InvalidPayload(f"field {key} must be a string")
    return strip_outer_quotes(trim(value))


def field_int(obj: dict[str, Any], *keys: str) -> int | None:
    """Non-negative integer field; anything unusable counts as absent."""
    _, value = _first_present(obj, keys)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value >= 0 else None
    if isinstance(value, str) and trim(value).isdigit():
        return int(trim(value))
    return None


def field_bool(obj: dict[str, Any], *keys: str) -> bool | None:
    _, value = _first_present(obj, keys)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = trim(value).lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def clamp_limit(value: int | None, default: int, maximum: int) -> int:
    """0 or missing falls back to the default, never to zero."""
    if not value:
        return default
    return min(value, maximum)


# Per-tool bounds.
LIST_DIR_DEFAULT_MAX_ENTRIES = 200
LIST_DIR_MAX_ENTRIES = 1000
READ_FILE_DEFAULT_MAX_BYTES = 12 * 1024
READ_FILE_MAX_BYTES = 256 * 1024
GREP_FILES_DEFAULT_MAX_MATCHES = 200
GREP_FILES_MAX_MATCHES = 2000
PROJECT_SEARCH_DEFAULT_MAX_FILES = 8
PROJECT_SEARCH_MAX_FILES = 24
PROJECT_SEARCH_DEFAULT_MAX_MATCHES = 300
PROJECT_SEARCH_MAX_MATCHES = 5000
COMMAND_DEFAULT_YIELD_MS = 700
COMMAND_MAX_YIELD_MS = 5000


def sanitize_yield_ms(value: int | None) -> int:
    return clamp_limit(value, COMMAND_DEFAULT_YIELD_MS, COMMAND_MAX_YIELD_MS)
