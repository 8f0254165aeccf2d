"""Tests for record classification."""

from __future__ import annotations

from pydantic import TypeAdapter

from answer_stream.stream.classifier import classify
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


def test_declared_type_wins() -> None:
    """Explicit `type` values map through the lookup table."""

    citation = classify({"type": "citation", "citation": {"fileName": "a.pdf", "text": "x"}})
    assert isinstance(citation, CitationRecord)
    assert citation.citation == {"fileName": "a.pdf", "text": "x"}

    assert isinstance(classify({"type": "supporting_content", "items": []}), SupportingContentRecord)
    assert isinstance(classify({"type": "thought_process", "thoughts": "x"}), ThoughtProcessRecord)
    assert isinstance(classify({"type": "done", "answer": {"content": "x"}}), DoneRecord)


def test_stream_type_aliases() -> None:
    """Typed stream events from chat backends map onto the same kinds."""

    content = classify({"type": "content", "content": "Hel"})
    assert isinstance(content, PlainDeltaRecord)
    assert content.text == "Hel"

    assert classify({"type": "thoughts", "content": "Searching"}).kind is RecordKind.THOUGHT_PROCESS
    assert classify({"type": "search_results", "searchResults": {}}).kind is RecordKind.SUPPORTING_CONTENT


def test_citation_without_body_falls_back_to_shape() -> None:
    """A citation tag with nothing to cite is not a usable citation."""

    assert isinstance(classify({"type": "citation"}), UnknownRecord)


def test_context_thoughts_is_context_update() -> None:
    """Nested context thoughts or data points mark a context update."""

    assert isinstance(classify({"context": {"thoughts": ["step1", "step2"]}}), ContextUpdateRecord)
    assert isinstance(classify({"context": {"data_points": {"text": ["a.pdf: x"]}}}), ContextUpdateRecord)


def test_plain_delta_shapes() -> None:
    """Bare text increments, including OpenAI-style deltas, are plain deltas."""

    assert classify({"delta": "Hi"}) == PlainDeltaRecord(text="Hi")
    assert classify({"delta": {"content": " "}}) == PlainDeltaRecord(text=" ")
    assert classify({"choices": [{"delta": {"content": "there"}}]}) == PlainDeltaRecord(text="there")
    assert classify({"content": "plain"}) == PlainDeltaRecord(text="plain")


def test_content_with_structure_is_context_update() -> None:
    """Content next to structural markers is applied through the extractors."""

    record = classify({"content": "Answer", "sources": [{"id": "s1"}]})

    assert isinstance(record, ContextUpdateRecord)
    assert record.payload["sources"] == [{"id": "s1"}]


def test_unmapped_type_uses_shape() -> None:
    """Unknown `type` values do not block shape heuristics."""

    assert classify({"type": "status", "content": "ok"}) == PlainDeltaRecord(text="ok")


def test_unknown_record_keeps_payload() -> None:
    """Unrecognized payloads are retained with a deterministic fingerprint."""

    record = classify({"foo": 1})

    assert isinstance(record, UnknownRecord)
    assert record.payload == {"foo": 1}
    assert record.fingerprint == stable_hash({"foo": 1})


def test_record_union_discriminates_on_kind() -> None:
    """Serialized records validate back into their own variant."""

    adapter = TypeAdapter(Record)
    record = adapter.validate_python(PlainDeltaRecord(text="x").model_dump())

    assert isinstance(record, PlainDeltaRecord)
    assert record.text == "x"
