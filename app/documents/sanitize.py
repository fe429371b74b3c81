"""
String sanitation for form data and template payloads.

Two distinct passes:
- sanitize_data: whole-field cleanup at any depth (trim, per-line whitespace collapse,
  "undefined"/"null" fields become empty strings).
- scrub_tokens_deep: removes placeholder tokens embedded mid-string. Must run after
  sanitize_data and after the payload has been prepared for rendering.

Neither pass raises on malformed input.
"""

import re
from datetime import date, datetime
from typing import Any

WHOLE_PLACEHOLDER_RE = re.compile(r"^(?:undefined|null)$", re.IGNORECASE)
LEADING_PLACEHOLDER_RE = re.compile(r"^(?:undefined|null)[\s:;.,-]+", re.IGNORECASE)
EMBEDDED_TOKEN_RE = re.compile(r"(?:\bundefined\b|\bnull\b)[ \t:;.,-]*", re.IGNORECASE)
_NEWLINES_RE = re.compile(r"\r\n?")
_SPACES_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace inside each line, keeping the line breaks."""
    text = _NEWLINES_RE.sub("\n", text)
    return "\n".join(_SPACES_RE.sub(" ", line).strip() for line in text.split("\n")).strip()


def sanitize_data(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, dict):
        return {key: sanitize_data(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_data(item) for item in value]
    if isinstance(value, str):
        trimmed = _NEWLINES_RE.sub("\n", value).strip()
        if WHOLE_PLACEHOLDER_RE.match(trimmed):
            return ""
        return collapse_whitespace(trimmed)
    return value


def normalize_placeholder(value: Any) -> Any:
    """Blank out a placeholder field and strip leading tokens ('undefined: text' -> 'text')."""
    if value is None:
        return ""
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed or WHOLE_PLACEHOLDER_RE.match(trimmed):
        return ""
    while LEADING_PLACEHOLDER_RE.match(trimmed):
        trimmed = LEADING_PLACEHOLDER_RE.sub("", trimmed, count=1).lstrip()
    return "" if WHOLE_PLACEHOLDER_RE.match(trimmed) else trimmed


def scrub_tokens(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    if not EMBEDDED_TOKEN_RE.search(text):
        return text
    return collapse_whitespace(EMBEDDED_TOKEN_RE.sub("", text))


def scrub_tokens_deep(value: Any) -> Any:
    # Strings without tokens pass through untouched: blank table cells are a single space on purpose.
    if value is None:
        return ""
    if isinstance(value, (date, datetime, bytes, bytearray)):
        return value
    if isinstance(value, dict):
        return {key: scrub_tokens_deep(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub_tokens_deep(item) for item in value]
    if isinstance(value, str):
        if not EMBEDDED_TOKEN_RE.search(value):
            return value
        return scrub_tokens(normalize_placeholder(value))
    return value
