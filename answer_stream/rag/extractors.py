"""Ordered alias chains that pull answer fields out of backend payloads.

Each target field has a fixed tuple of `Alias(path, reader)` pairs. A chain is
tried front to back: the first path that exists in the payload and whose
reader accepts the value wins. Readers return `None` for a value of the wrong
shape, which simply advances the chain. Paths are dotted; numeric segments
index into lists (`choices.0.message.content`).

All functions here are pure: they never raise, never mutate their input and
return fresh objects, so re-applying a record is always safe.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from answer_stream.data.cleaners import as_text, dump_json, text_or_dump
from answer_stream.rag.schemas import SupportingContentItem

_MISSING = object()

# "contract.pdf: Section 5.3 ..." -> title + body, used for data points.
_PREFIX_RE = re.compile(r"^\s*([^:\n]{1,200}?)\s*:\s+(.+)$", re.DOTALL)
_FILE_NAME_RE = re.compile(r"\S.*\.[A-Za-z0-9]{2,5}$")

Reader = Callable[[Any], Any]


@dataclass(frozen=True)
class Alias:
    path: str
    reader: Reader


def resolve_path(payload: Any, path: str) -> Any:
    """Walk a dotted path; returns the `_MISSING` sentinel when absent."""

    current = payload
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            position = int(part)
            if position >= len(current):
                return _MISSING
            current = current[position]
        else:
            return _MISSING
    return current


def run_chain(payload: Any, chain: Sequence[Alias]) -> Any:
    """Return the first accepted value along `chain`, or `None`."""

    for alias in chain:
        value = resolve_path(payload, alias.path)
        if value is _MISSING or value is None:
            continue
        result = alias.reader(value)
        if result is not None:
            return result
    return None


# Readers --------------------------------------------------------------------


def read_text(value: Any) -> str | None:
    return as_text(value)


def read_text_or_dump(value: Any) -> str | None:
    return text_or_dump(value)


def _format_thought(item: Any) -> str | None:
    if isinstance(item, str):
        return item if item.strip() else None
    if isinstance(item, dict) and ("title" in item or "description" in item):
        title = as_text(item.get("title"))
        description = text_or_dump(item.get("description"))
        if title and description:
            return f"{title}: {description}"
        return title or description
    return text_or_dump(item)


def read_thoughts(value: Any) -> str | None:
    """Strings pass through; lists become one line per step."""

    if isinstance(value, list):
        steps = [step for step in (_format_thought(item) for item in value) if step]
        return "\n".join(steps) if steps else None
    return _format_thought(value)


def read_string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [item for item in value if isinstance(item, str) and item.strip()]
    return items or None


def split_file_prefix(text: str, *, strict: bool = True) -> tuple[str, str] | None:
    """Split `"name: body"`; in strict mode the name must look like a file."""

    match = _PREFIX_RE.match(text)
    if match is None:
        return None
    head, body = match.group(1).strip(), match.group(2).strip()
    if not head or not body:
        return None
    if strict and not _FILE_NAME_RE.match(head):
        return None
    return head, body


def _first_text(item: dict[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        text = as_text(item.get(key))
        if text is not None:
            return text
    return None


def _first_list_text(item: dict[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        values = item.get(key)
        if isinstance(values, list):
            for value in values:
                text = as_text(value)
                if text is not None:
                    return text
    return None


def supporting_item(
    item: Any,
    position: int,
    *,
    strict_prefix: bool = True,
    default_title: str | None = None,
) -> SupportingContentItem | None:
    """Normalize one string or object into a supporting-content item.

    Untitled items get `default_title`, else a title numbered by `position`.
    """

    fallback_title = default_title or f"Supporting Content {position}"

    if isinstance(item, str):
        if not item.strip():
            return None
        split = split_file_prefix(item, strict=strict_prefix)
        if split is not None:
            title, body = split
            return SupportingContentItem(title=title, content=body, source=title)
        return SupportingContentItem(title=fallback_title, content=item)

    if not isinstance(item, dict):
        return None

    content = (
        _first_text(item, ("content", "text", "excerpt", "snippet", "citation"))
        or _first_list_text(item, ("excerpts", "snippets"))
    )
    if content is None:
        highlights = read_string_list(item.get("highlights"))
        content = "\n".join(highlights) if highlights else None
    if content is None:
        return None

    title = _first_text(item, ("title", "name", "source", "fileName", "citation")) or fallback_title
    source = _first_text(item, ("source", "document", "url", "fileName"))
    return SupportingContentItem(title=title, content=content, source=source)


def _supporting_items(value: Any, *, strict_prefix: bool, cited_only: bool = False) -> list[SupportingContentItem] | None:
    if not isinstance(value, list):
        return None
    items: list[SupportingContentItem] = []
    for position, raw in enumerate(value, start=1):
        if cited_only and not (isinstance(raw, dict) and (as_text(raw.get("content")) or as_text(raw.get("text")))):
            continue
        item = supporting_item(raw, position, strict_prefix=strict_prefix)
        if item is not None:
            items.append(item)
    return items or None


def read_supporting_items(value: Any) -> list[SupportingContentItem] | None:
    return _supporting_items(value, strict_prefix=True)


def read_cited_items(value: Any) -> list[SupportingContentItem] | None:
    """Only citations that carry their own `content` or `text`."""

    return _supporting_items(value, strict_prefix=True, cited_only=True)


def read_data_points(value: Any) -> list[SupportingContentItem] | None:
    if isinstance(value, dict):
        value = value.get("text")
    return _supporting_items(value, strict_prefix=False)


def read_object_list(value: Any) -> list[dict[str, Any]] | None:
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return None
    items = [copy.deepcopy(item) for item in value if isinstance(item, dict) and item]
    return items or None


# Chains ---------------------------------------------------------------------

CONTENT_CHAIN: tuple[Alias, ...] = (
    Alias("content", read_text),
    Alias("answer", read_text),
    Alias("answer.content", read_text),
    Alias("answer.answer", read_text),
    Alias("response", read_text_or_dump),
    Alias("message.content", read_text),
    Alias("completion", read_text),
    Alias("choices.0.message.content", read_text),
    Alias("data.response", read_text),
    Alias("result.answer", read_text),
)

THOUGHT_CHAIN: tuple[Alias, ...] = (
    Alias("thought_process", read_thoughts),
    Alias("thoughtProcess", read_thoughts),
    Alias("answer.thought_process", read_thoughts),
    Alias("thoughts", read_thoughts),
    Alias("context.thoughts", read_thoughts),
    Alias("result.thoughts", read_thoughts),
    Alias("metadata.reasoning", read_thoughts),
    Alias("systemMessage", read_text),
    Alias("reasoning", read_text),
)

SUPPORTING_CONTENT_CHAIN: tuple[Alias, ...] = (
    Alias("supporting_content", read_supporting_items),
    Alias("supportingContent", read_supporting_items),
    Alias("answer.supporting_content", read_supporting_items),
    Alias("message.content.citations", read_cited_items),
    Alias("context.citations", read_cited_items),
    Alias("citations", read_cited_items),
    Alias("context.data_points.text", read_data_points),
    Alias("context.data_points", read_data_points),
    Alias("data_points", read_data_points),
    Alias("items", read_supporting_items),
    Alias("documentExcerpts", read_supporting_items),
    Alias("search.results", read_supporting_items),
    Alias("searchResults.sources", read_supporting_items),
    Alias("sources", read_supporting_items),
)

CITATION_CHAIN: tuple[Alias, ...] = (
    Alias("citations", read_object_list),
    Alias("context.citations", read_object_list),
    Alias("message.content.citations", read_object_list),
    Alias("answer.citations", read_object_list),
)

FOLLOWUP_CHAIN: tuple[Alias, ...] = (
    Alias("followup_questions", read_string_list),
    Alias("followupQuestions", read_string_list),
    Alias("context.followup_questions", read_string_list),
    Alias("suggestedQuestions", read_string_list),
    Alias("answer.followup_questions", read_string_list),
)

# Not a first-wins chain: every location contributes, in this order.
SOURCE_LOCATIONS: tuple[str, ...] = (
    "documentExcerpts",
    "searchResults.sources",
    "search_results.sources",
    "sources",
    "documents",
    "search.results",
    "answer.sources",
)


# Public extractors -----------------------------------------------------------


def extract_content(payload: Any) -> str | None:
    return run_chain(payload, CONTENT_CHAIN)


def extract_content_or_dump(payload: Any, *, indent: int = 2) -> str:
    """Content chain with a structural dump of the whole payload as last resort."""

    content = extract_content(payload)
    if content is not None:
        return content
    if isinstance(payload, str):
        return payload
    return dump_json(payload, indent=indent)


def extract_thought_process(payload: Any) -> str | None:
    return run_chain(payload, THOUGHT_CHAIN)


def extract_supporting_content(payload: Any) -> list[SupportingContentItem]:
    return run_chain(payload, SUPPORTING_CONTENT_CHAIN) or []


def extract_citations(payload: Any) -> list[dict[str, Any]]:
    return run_chain(payload, CITATION_CHAIN) or []


def extract_followup_questions(payload: Any) -> list[str]:
    return run_chain(payload, FOLLOWUP_CHAIN) or []


def extract_sources(payload: Any) -> list[dict[str, Any]]:
    """Collect source-like objects from every known location, in order."""

    sources: list[dict[str, Any]] = []
    for path in SOURCE_LOCATIONS:
        value = resolve_path(payload, path)
        if value is _MISSING:
            continue
        sources.extend(read_object_list(value) or [])
    return sources
