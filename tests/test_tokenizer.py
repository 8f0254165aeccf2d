"""Tests for splitting raw stream reads into records and prose."""

from __future__ import annotations

import pytest

from answer_stream.config import Settings
from answer_stream.stream.tokenizer import ChunkTokenizer, decode_objects


def test_lines_split_into_records_and_prose() -> None:
    """JSON object lines become records; other lines stay prose in order."""

    tokens = ChunkTokenizer().feed('Intro text\n{"type": "done"}\n\n')

    assert [token.is_record for token in tokens] == [False, True]
    assert tokens[0].text == "Intro text"
    assert tokens[1].value == {"type": "done"}


def test_truncated_record_is_held_until_completed() -> None:
    """A partial trailing record is parsed once, after the rest arrives."""

    tokenizer = ChunkTokenizer()

    assert tokenizer.feed('{"type":"citation"') == []
    assert tokenizer.pending == '{"type":"citation"'

    tokens = tokenizer.feed(',"citation":{"fileName":"a.pdf"}}\n')

    assert len(tokens) == 1
    assert tokens[0].value == {"type": "citation", "citation": {"fileName": "a.pdf"}}
    assert tokenizer.pending == ""


def test_complete_tail_waits_for_line_end() -> None:
    """A tail that already parses is still held until its line is finished."""

    tokenizer = ChunkTokenizer()

    assert tokenizer.feed('{"delta": "Hi"}') == []
    assert tokenizer.pending == '{"delta": "Hi"}'
    assert [token.value for token in tokenizer.flush()] == [{"delta": "Hi"}]


def test_cut_position_does_not_change_tokens() -> None:
    """A line fed whole or cut after its JSON prefix yields the same prose."""

    line = '{"delta":"x"} is what the API returned\n'

    whole = ChunkTokenizer().feed(line)

    split = ChunkTokenizer()
    pieces = split.feed(line[:13]) + split.feed(line[13:])

    assert pieces == whole
    assert [(token.text, token.is_record) for token in whole] == [
        ('{"delta":"x"} is what the API returned', False),
    ]


def test_concatenated_objects_are_split() -> None:
    """Several objects on one line yield one record each."""

    tokens = ChunkTokenizer().feed('{"a": 1}{"b": 2} {"c": 3}\n')

    assert [token.value for token in tokens] == [{"a": 1}, {"b": 2}, {"c": 3}]


def test_concatenated_line_with_garbage_degrades_to_prose() -> None:
    """A multi-record line with a broken part is kept whole as prose."""

    tokens = ChunkTokenizer().feed('{"a": 1} trailing words\n')

    assert len(tokens) == 1
    assert not tokens[0].is_record
    assert tokens[0].text == '{"a": 1} trailing words'


def test_scalars_and_arrays_stay_prose() -> None:
    """Lines such as `42` or `[1]` are answer text, not records."""

    tokens = ChunkTokenizer().feed("42\n[1]\n")

    assert [token.text for token in tokens] == ["42", "[1]"]
    assert not any(token.is_record for token in tokens)
    assert decode_objects("[1]") is None


def test_sse_framing_is_unwrapped() -> None:
    """SSE data lines are parsed; comments, fields and [DONE] are dropped."""

    chunk = ": keep-alive\nevent: message\nid: 7\ndata: {\"type\": \"content\", \"content\": \"Hi\"}\n\ndata: [DONE]\n"
    tokens = ChunkTokenizer().feed(chunk)

    assert [token.value for token in tokens] == [{"type": "content", "content": "Hi"}]


def test_multibyte_character_split_across_reads() -> None:
    """UTF-8 sequences cut between byte chunks decode correctly."""

    tokenizer = ChunkTokenizer()

    assert tokenizer.feed(b"caf\xc3") == []
    tokens = tokenizer.feed(b"\xa9\n")

    assert [token.text for token in tokens] == ["café"]


def test_flush_releases_trailing_prose() -> None:
    """Prose without a final newline is emitted when the stream ends."""

    tokenizer = ChunkTokenizer()

    assert tokenizer.feed("last words") == []
    tokens = tokenizer.flush()

    assert [token.text for token in tokens] == ["last words"]
    assert tokenizer.pending == ""


def test_oversized_tail_released_as_prose() -> None:
    """An unterminated tail beyond the configured limit is not held forever."""

    tokenizer = ChunkTokenizer(config=Settings(MAX_PENDING_CHARS=10))
    tokens = tokenizer.feed("x" * 20)

    assert [token.text for token in tokens] == ["x" * 20]
    assert tokenizer.pending == ""


def test_non_text_chunk_rejected() -> None:
    """Only str and bytes chunks are accepted."""

    with pytest.raises(TypeError):
        ChunkTokenizer().feed(42)  # type: ignore[arg-type]
