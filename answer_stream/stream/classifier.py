"""Assign a `RecordKind` to each parsed JSON object.

Classification order (first match wins):
1. An explicit `type` discriminator found in `TYPE_TABLE`.
2. A `context` object carrying `thoughts` or `data_points` -> ContextUpdate.
3. A bare `delta`/`content` string with no structural markers -> PlainDelta.
4. Any other structural marker (sources, citations, answer, ...) ->
   ContextUpdate, applied through the full extractor set.
5. Anything else -> Unknown.
"""

from __future__ import annotations

from typing import Any

from answer_stream.stream.records import (
    CitationRecord,
    ContextUpdateRecord,
    DoneRecord,
    PlainDeltaRecord,
    Record,
    RecordKind,
    SupportingContentRecord,
    ThoughtProcessRecord,
    UnknownRecord,
)
from answer_stream.utils.ids import stable_hash
from answer_stream.utils.logging import get_logger

logger = get_logger(__name__)

TYPE_TABLE: dict[str, RecordKind] = {
    "citation": RecordKind.CITATION,
    "supporting_content": RecordKind.SUPPORTING_CONTENT,
    "thought_process": RecordKind.THOUGHT_PROCESS,
    "done": RecordKind.DONE,
    "content": RecordKind.PLAIN_DELTA,
    "delta": RecordKind.PLAIN_DELTA,
    "thoughts": RecordKind.THOUGHT_PROCESS,
    "search_results": RecordKind.SUPPORTING_CONTENT,
    "sources": RecordKind.SUPPORTING_CONTENT,
}

STRUCTURAL_KEYS = (
    "context",
    "answer",
    "sources",
    "citations",
    "supporting_content",
    "supportingContent",
    "thought_process",
    "thoughtProcess",
    "thoughts",
    "data_points",
    "followup_questions",
    "followupQuestions",
    "documentExcerpts",
    "documents",
    "searchResults",
    "search_results",
    "search",
)


def has_context_markers(value: dict[str, Any]) -> bool:
    context = value.get("context")
    if not isinstance(context, dict):
        return False
    if "thoughts" in context:
        return True
    data_points = context.get("data_points")
    return isinstance(data_points, list) or (isinstance(data_points, dict) and "text" in data_points)


def has_structural_markers(value: dict[str, Any]) -> bool:
    return any(key in value for key in STRUCTURAL_KEYS)


def delta_text(value: dict[str, Any]) -> str | None:
    """Return the content increment of a delta-shaped record, if any.

    Whitespace-only increments are kept: they are part of the answer.
    """

    delta = value.get("delta")
    if isinstance(delta, str):
        return delta
    if isinstance(delta, dict) and isinstance(delta.get("content"), str):
        return delta["content"]

    choices = value.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice_delta = choices[0].get("delta")
        if isinstance(choice_delta, dict) and isinstance(choice_delta.get("content"), str):
            return choice_delta["content"]
    return None


def _plain_text(value: dict[str, Any]) -> str | None:
    text = delta_text(value)
    if text is not None:
        return text
    content = value.get("content")
    return content if isinstance(content, str) else None


def _citation_body(value: dict[str, Any]) -> dict[str, Any] | None:
    nested = value.get("citation")
    if isinstance(nested, dict) and nested:
        return nested
    body = {key: item for key, item in value.items() if key != "type"}
    return body or None


def _from_declared(kind: RecordKind, value: dict[str, Any]) -> Record | None:
    if kind is RecordKind.CITATION:
        body = _citation_body(value)
        return CitationRecord(citation=body, payload=value) if body is not None else None
    if kind is RecordKind.PLAIN_DELTA:
        text = _plain_text(value)
        return PlainDeltaRecord(text=text) if text is not None else None
    if kind is RecordKind.THOUGHT_PROCESS:
        return ThoughtProcessRecord(payload=value)
    if kind is RecordKind.SUPPORTING_CONTENT:
        return SupportingContentRecord(payload=value)
    if kind is RecordKind.DONE:
        return DoneRecord(payload=value)
    return None


def unknown_record(value: Any) -> UnknownRecord:
    return UnknownRecord(payload=value, fingerprint=stable_hash(value))


def classify(value: Any) -> Record:
    """Classify one parsed JSON value into a tagged `Record`."""

    if not isinstance(value, dict):
        return unknown_record(value)

    declared = value.get("type")
    if isinstance(declared, str):
        kind = TYPE_TABLE.get(declared.strip().lower())
        if kind is not None:
            record = _from_declared(kind, value)
            if record is not None:
                return record
        logger.debug(
            "Declared record type not usable; falling back to shape",
            extra={"context": {"type": declared}},
        )

    if has_context_markers(value):
        return ContextUpdateRecord(payload=value)

    structural = has_structural_markers(value)
    text = _plain_text(value)
    if text is not None and not structural:
        return PlainDeltaRecord(text=text)

    if structural:
        return ContextUpdateRecord(payload=value)

    return unknown_record(value)
