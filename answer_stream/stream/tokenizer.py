"""Split a raw response stream into JSON record candidates and prose.

Backends write newline-delimited JSON, sometimes wrapped in Server-Sent Event
framing, sometimes interleaved with plain text, and network reads cut lines
at arbitrary points. The tokenizer keeps the unterminated tail of the buffer
until a later chunk completes it, so a record split across reads is parsed
exactly once.

Rules:
- Only JSON objects are record candidates. Scalars and arrays on a line are
  prose, because a plain-text answer line such as `42` or `[1]` must not be
  swallowed as data.
- A line holding several objects back to back is split; if any part of it
  fails to parse the whole line is prose.
- A trailing fragment without a newline is held until its newline arrives
  or the stream is flushed, even when it already parses: the rest of the
  line may still turn it into prose. Below the pending cap, output never
  depends on where reads are cut.
"""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any

from answer_stream.config import Settings, settings as default_settings
from answer_stream.utils.logging import get_logger

logger = get_logger(__name__)

_SSE_FIELD_RE = re.compile(r"^(event|id|retry):")
_DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class Token:
    """One unit of tokenizer output, in stream order."""

    text: str
    value: dict[str, Any] | None = None

    @property
    def is_record(self) -> bool:
        return self.value is not None


def decode_objects(text: str) -> list[dict[str, Any]] | None:
    """Parse `text` as one or more concatenated JSON objects.

    Returns `None` when any part of the text is not a JSON object.
    """

    try:
        single = json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        return [single] if isinstance(single, dict) else None

    decoder = json.JSONDecoder()
    values: list[dict[str, Any]] = []
    idx = 0
    length = len(text)
    while idx < length:
        try:
            value, end = decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            return None
        if not isinstance(value, dict):
            return None
        values.append(value)
        idx = end
        while idx < length and text[idx].isspace():
            idx += 1

    return values if len(values) > 1 else None


def _unwrap_sse(line: str) -> str | None:
    """Strip SSE framing from a trimmed line; `None` means drop the line."""

    if line.startswith(":") or _SSE_FIELD_RE.match(line):
        return None
    if line.startswith("data:"):
        line = line[5:].strip()
    if not line or line == _DONE_SENTINEL:
        return None
    return line


class ChunkTokenizer:
    """Incremental line tokenizer for one response stream."""

    def __init__(self, *, config: Settings | None = None) -> None:
        self._config = config or default_settings
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        """Unterminated text held back for the next chunk."""

        return self._pending

    def feed(self, chunk: str | bytes) -> list[Token]:
        """Append one stream read and return every token it completes."""

        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        elif isinstance(chunk, str):
            text = chunk
        else:
            raise TypeError(f"chunk must be str or bytes, not {type(chunk).__name__}")

        lines = (self._pending + text).split("\n")
        self._pending = lines.pop()

        tokens: list[Token] = []
        for line in lines:
            tokens.extend(self._tokenize_line(line))
        tokens.extend(self._release_oversized_tail())
        return tokens

    def flush(self) -> list[Token]:
        """Tokenize whatever is still held; used when the stream ends."""

        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not tail.strip():
            return []
        return self._tokenize_line(tail)

    def reset(self) -> None:
        self._pending = ""
        self._decoder.reset()

    def _release_oversized_tail(self) -> list[Token]:
        tail = self._pending
        if not tail.strip():
            return []

        if len(tail) > self._config.max_pending_chars:
            logger.warning(
                "Pending stream tail exceeded limit; releasing it as prose",
                extra={"context": {"chars": len(tail), "limit": self._config.max_pending_chars}},
            )
            self._pending = ""
            return [Token(text=tail.rstrip("\r"))]

        logger.debug("Holding incomplete stream tail", extra={"context": {"chars": len(tail)}})
        return []

    @staticmethod
    def _tokenize_line(line: str) -> list[Token]:
        stripped = line.strip()
        if not stripped:
            return []

        data = _unwrap_sse(stripped)
        if data is None:
            return []

        values = decode_objects(data)
        if values is None:
            prose = data if stripped.startswith("data:") else line.rstrip("\r")
            return [Token(text=prose)]

        if len(values) == 1:
            return [Token(text=data, value=values[0])]
        return [Token(text=json.dumps(value, ensure_ascii=False), value=value) for value in values]
