"""Per-turn accumulator that owns the single evolving `Answer`.

Records are applied strictly in arrival order. Each applied record mutates the
turn state once and then publishes an immutable snapshot to subscribers.

Merge rules:
- Content only grows while streaming: deltas and prose are appended, and
  cumulative content updates replace the text only when they extend it.
- Content carried by a context update (an untyped record that also carries
  structural fields) is taken as a cumulative snapshot: text already present
  is not appended again. Increments belong in `delta` or
  typed `content` records, which are always appended.
- Prose lines keep the line break the stream put before them, so they are
  joined to the preceding text with a newline rather than run together.
- A terminal (done) payload may replace content once.
- Supporting content is deduplicated by `(title, content prefix)`.
- Sources go through the turn's `SourceRegistry` (non-regressive merges).
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from langchain_core.utils.json import parse_json_markdown

from answer_stream.config import Settings, settings as default_settings
from answer_stream.data.cleaners import clean_answer_text, merge_text
from answer_stream.graph.state import AnswerState
from answer_stream.rag.citations import CitationResolver
from answer_stream.rag.extractors import (
    extract_citations,
    extract_content,
    extract_content_or_dump,
    extract_followup_questions,
    extract_sources,
    extract_supporting_content,
    extract_thought_process,
    read_supporting_items,
    read_thoughts,
    supporting_item,
)
from answer_stream.rag.registry import SourceRegistry
from answer_stream.rag.schemas import Answer, SupportingContentItem
from answer_stream.stream.classifier import classify, delta_text
from answer_stream.stream.records import (
    CitationRecord,
    ContextUpdateRecord,
    DoneRecord,
    PlainDeltaRecord,
    Record,
    SupportingContentRecord,
    ThoughtProcessRecord,
    UnknownRecord,
)
from answer_stream.stream.tokenizer import ChunkTokenizer, Token
from answer_stream.utils.ids import SOURCE_ID_KEYS, SOURCE_NAME_KEYS
from answer_stream.utils.logging import get_logger
from answer_stream.utils.tracing import configure_langsmith_tracing, traceable

logger = get_logger(__name__)

Subscriber = Callable[[Answer], None]


class AnswerAccumulator:
    """Consumes one response stream (or one terminal payload) for a chat turn.

    Each instance owns its own registry, resolver and tokenizer. Create a new
    accumulator for every turn.
    """

    def __init__(self, *, config: Settings | None = None) -> None:
        self._config = config or default_settings
        configure_langsmith_tracing()
        self.registry = SourceRegistry()
        self.resolver = CitationResolver(self.registry, config=self._config)
        self._tokenizer = ChunkTokenizer(config=self._config)

        self._state = AnswerState.EMPTY
        self._content = ""
        self._thought_process = ""
        self._supporting: list[SupportingContentItem] = []
        self._supporting_keys: set[tuple[str, str]] = set()
        self._followups: list[str] = []
        self._prose: list[str] = []
        self._unknown: dict[str, UnknownRecord] = {}
        self._subscribers: list[Subscriber] = []

    # Read API ---------------------------------------------------------------

    @property
    def state(self) -> AnswerState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is AnswerState.STREAMING

    @property
    def prose(self) -> str:
        """Non-JSON stream lines, in order, kept as fallback display text."""

        return "\n".join(self._prose)

    @property
    def unknown_records(self) -> list[UnknownRecord]:
        return list(self._unknown.values())

    def current_answer(self) -> Answer:
        """Immutable snapshot of the turn as it stands now."""

        return Answer(
            content=self._content,
            thought_process=self._thought_process,
            supporting_content=[item.model_copy() for item in self._supporting],
            citations=self.resolver.citations(),
            sources=self.registry.sources(),
            followup_questions=list(self._followups),
            is_streaming=self.is_streaming,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call `callback` with a fresh snapshot after every mutation.

        Returns a function that removes the subscription.
        """

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Write API --------------------------------------------------------------

    def feed(self, chunk: str | bytes) -> Answer:
        """Append one raw stream read and apply every record it completes."""

        if self._state.is_closed:
            logger.warning(
                "Chunk received after turn closed; ignoring",
                extra={"context": {"state": self._state.value}},
            )
            return self.current_answer()

        tokens = self._tokenizer.feed(chunk)
        if self._state is AnswerState.EMPTY:
            self._state = AnswerState.STREAMING
            self._publish()
        self._drain(tokens)
        return self.current_answer()

    def apply_record(self, record: Record) -> bool:
        """Apply one classified record; returns `False` if the turn is closed."""

        if self._state.is_closed:
            logger.warning(
                "Record received after turn closed; ignoring",
                extra={"context": {"kind": record.kind.value, "state": self._state.value}},
            )
            return False
        if self._state is AnswerState.EMPTY:
            self._state = AnswerState.STREAMING

        version = self.registry.version
        if isinstance(record, PlainDeltaRecord):
            self._content += record.text
        elif isinstance(record, ContextUpdateRecord):
            self._apply_context_update(record.payload)
        elif isinstance(record, CitationRecord):
            self._apply_citation(record.citation)
        elif isinstance(record, SupportingContentRecord):
            self._apply_supporting_content(record.payload)
        elif isinstance(record, ThoughtProcessRecord):
            self._apply_thoughts(record.payload)
        elif isinstance(record, DoneRecord):
            self._apply_terminal(record.payload)
            self._close()
            return True
        else:
            self._retain_unknown(record)

        if self.registry.version != version:
            self.resolver.retry_unresolved()
        self._publish()
        return True

    def finalize(self, payload: Any = None) -> Answer:
        """Close the turn, optionally applying one terminal payload first.

        `payload` may be a dict, or text holding JSON (fenced or truncated
        JSON is accepted). Text that is not JSON becomes the answer content.
        Finalizing an already closed turn is logged and ignored.
        """

        if self._state.is_closed:
            logger.warning(
                "Finalize called on closed turn; ignoring",
                extra={"context": {"state": self._state.value}},
            )
            return self.current_answer()

        self._drain(self._tokenizer.flush())
        if self._state.is_closed:
            return self.current_answer()

        if payload is not None:
            self._apply_terminal(self._parse_terminal(payload), fallback_dump=True)
        self._close()
        return self.current_answer()

    def abort(self) -> Answer:
        """Stop a live turn, keeping everything applied so far."""

        if self._state.is_closed:
            logger.warning("Abort called on closed turn; ignoring", extra={"context": {"state": self._state.value}})
            return self.current_answer()

        dropped = len(self._tokenizer.pending)
        self._tokenizer.reset()
        self._state = AnswerState.ABORTED
        logger.info("Answer aborted", extra={"context": {"dropped_pending_chars": dropped}})
        self._publish()
        return self.current_answer()

    def enrich_source(self, source_id: str, payload: dict[str, Any]) -> bool:
        """Merge asynchronously fetched document details into a known source.

        Allowed in any state; a closed turn stays closed.
        """

        changed = self.registry.enrich(source_id, payload)
        if not changed:
            return False
        if not self._state.is_closed:
            self.resolver.retry_unresolved()
        self._publish()
        return True

    # Internals --------------------------------------------------------------

    def _drain(self, tokens: list[Token]) -> None:
        for token in tokens:
            if self._state.is_closed:
                logger.warning(
                    "Stream data after terminal record; ignoring",
                    extra={"context": {"chars": len(token.text)}},
                )
                continue
            if token.is_record:
                record = classify(token.value)
                logger.debug("Classified record", extra={"context": {"kind": record.kind.value}})
                self.apply_record(record)
            else:
                self._append_prose(token.text)

    def _append_prose(self, text: str) -> None:
        self._prose.append(text)
        if self._content and not self._content.endswith("\n"):
            self._content += "\n"
        self._content += text
        self._publish()

    def _apply_context_update(self, payload: dict[str, Any]) -> None:
        text = delta_text(payload)
        if text is not None:
            self._content += text
        else:
            content = extract_content(payload)
            if content is not None:
                self._content = merge_text(self._content, content)
        self._apply_structure(payload)

    def _apply_citation(self, citation: dict[str, Any]) -> None:
        source_id = self.registry.upsert(citation)
        self.resolver.register(citation, source_id)
        source = self.registry.get(source_id)
        default_title = source.file_name if source is not None else source_id
        item = supporting_item(citation, 1, default_title=default_title)
        if item is not None:
            self._add_supporting([item])

    def _apply_supporting_content(self, payload: dict[str, Any]) -> None:
        items = extract_supporting_content(payload) or read_supporting_items(payload.get("content")) or []
        self._add_supporting(items)
        self._apply_structure(payload)

    def _apply_thoughts(self, payload: dict[str, Any]) -> None:
        thoughts = extract_thought_process(payload) or read_thoughts(payload.get("content"))
        if thoughts:
            self._thought_process = merge_text(self._thought_process, thoughts, separator="\n")
        self._apply_structure(payload)

    def _apply_structure(self, payload: dict[str, Any]) -> None:
        """Apply every non-content field a payload carries."""

        thoughts = extract_thought_process(payload)
        if thoughts:
            self._thought_process = merge_text(self._thought_process, thoughts, separator="\n")

        self._add_supporting(extract_supporting_content(payload))

        for position, raw in enumerate(extract_sources(payload)):
            self.registry.upsert(raw, position)

        for raw in extract_citations(payload):
            if any(raw.get(key) for key in SOURCE_ID_KEYS + SOURCE_NAME_KEYS):
                self.resolver.register(raw, self.registry.upsert(raw))

        for question in extract_followup_questions(payload):
            if question not in self._followups:
                self._followups.append(question)

    def _add_supporting(self, items: list[SupportingContentItem]) -> None:
        for item in items:
            key = item.dedup_key(self._config.supporting_content_key_chars)
            if key in self._supporting_keys:
                continue
            self._supporting_keys.add(key)
            self._supporting.append(item)

    def _parse_terminal(self, payload: Any) -> Any:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        if not isinstance(payload, str):
            return payload
        try:
            parsed = parse_json_markdown(payload)
        except (json.JSONDecodeError, ValueError):
            logger.debug("Terminal payload is not JSON; using it as text")
            return payload
        return parsed if isinstance(parsed, dict) else payload

    def _apply_terminal(self, payload: Any, *, fallback_dump: bool = False) -> None:
        if isinstance(payload, str):
            if payload.strip():
                self._content = payload
            return

        if isinstance(payload, dict):
            self._apply_structure(payload)
            content = extract_content(payload)
            if content is not None:
                self._content = content
                return

        if fallback_dump and not self._content.strip() and payload:
            self._content = extract_content_or_dump(payload, indent=self._config.json_dump_indent)

    def _retain_unknown(self, record: UnknownRecord) -> None:
        if record.fingerprint in self._unknown:
            return
        self._unknown[record.fingerprint] = record
        logger.debug("Retained unknown record", extra={"context": {"fingerprint": record.fingerprint}})

    @traceable(name="finalize_answer")
    def _close(self) -> None:
        content = clean_answer_text(self._content, strip_document_tags=self._config.strip_document_tags)
        if content:
            content, _ = self.resolver.resolve_text(content)
        if not content.strip():
            logger.warning("No answer content could be extracted; using placeholder")
            content = self._config.empty_answer_placeholder

        self._content = content
        self._state = AnswerState.FINALIZED
        logger.info(
            "Answer finalized",
            extra={
                "context": {
                    "chars": len(content),
                    "citations": len(self.resolver.citations()),
                    "sources": len(self.registry),
                    "unknown_records": len(self._unknown),
                }
            },
        )
        self._publish()

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.current_answer()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Answer subscriber failed")
