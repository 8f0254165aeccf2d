"""Text helpers shared by the extractors and the accumulator.

Backends disagree on what a "string" field contains: sometimes text, sometimes
a nested object, occasionally `null`. These helpers coerce values without
raising and strip the wrapper markup some backends leak into answers.
"""

from __future__ import annotations

import json
import re
from typing import Any

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Wrapper tags that retrieval backends echo back around answer text.
_DOCUMENT_TAG_RES = (
    re.compile(r"<userStyle>.*?</userStyle>", re.DOTALL),
    re.compile(r"<search_reminders>.*?</search_reminders>", re.DOTALL),
    re.compile(r"</?document_content>"),
    re.compile(r"</?document\b[^>]*>"),
    re.compile(r"</?source>"),
)


def as_text(value: Any) -> str | None:
    """Return `value` if it is a non-blank string, else `None`."""

    if isinstance(value, str) and value.strip():
        return value
    return None


def dump_json(value: Any, *, indent: int = 2) -> str:
    """Pretty-print any payload; never raises."""

    try:
        return json.dumps(value, indent=indent, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def text_or_dump(value: Any, *, indent: int = 2) -> str | None:
    """Strings pass through; non-empty objects and lists become a JSON dump."""

    text = as_text(value)
    if text is not None:
        return text
    if isinstance(value, (dict, list)) and value:
        return dump_json(value, indent=indent)
    return None


def clean_answer_text(text: str, *, strip_document_tags: bool = True) -> str:
    """Remove control characters and backend wrapper markup from answer text."""

    cleaned = _CONTROL_CHARS_RE.sub("", text)
    if strip_document_tags:
        for pattern in _DOCUMENT_TAG_RES:
            cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def merge_text(existing: str, incoming: str, *, separator: str = "\n\n") -> str:
    """Merge cumulative or repeated text without duplicating it.

    `incoming` that extends `existing` replaces it, text already present is
    ignored, anything else is appended. `incoming` is assumed to be a
    cumulative snapshot: a short increment that happens to repeat earlier text
    is dropped, so true increments must be concatenated by the caller instead.
    """

    if not incoming or incoming in existing:
        return existing
    if not existing or incoming.startswith(existing):
        return incoming
    return f"{existing}{separator}{incoming}"
