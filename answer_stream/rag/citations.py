"""Citation marker grammars and the single resolver loop that consumes them.

Supported markers:
- `[report.pdf]`, `[report.pdf#page=3]`, `[report.pdf, Page 3]`
- `<cite index="k-j">claim</cite>` where `k` is a zero-based position in the
  registry's canonical order (namespaced tags such as `<ns:cite>` too)
- `[Document K]`, `[Document K, Page N]` where `K` is one-based

All grammars are scanned in one pass. Overlapping matches are settled by
position first, then by grammar priority (file name, tag, document index),
so each span of text is claimed by exactly one marker.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from answer_stream.config import Settings, settings as default_settings
from answer_stream.data.cleaners import as_text
from answer_stream.rag.registry import SourceRegistry
from answer_stream.rag.schemas import Citation, Source
from answer_stream.utils.logging import get_logger
from answer_stream.utils.tracing import traceable

logger = get_logger(__name__)


class MarkerGrammar(StrEnum):
    FILE_NAME = "file_name"
    CITE_TAG = "cite_tag"
    DOCUMENT_INDEX = "document_index"


_FILE_NAME_RE = re.compile(
    r"\[([^\[\]\n]+?\.[A-Za-z][A-Za-z0-9]{1,4})(?:#page=(\d+)|,\s*[Pp]age\s+(\d+))?\](?!\()"
)
_CITE_TAG_RE = re.compile(
    r"<(?:\w+:)?cite\b[^>]*?\bindex=\"(\d+)(?:-\d+)?[^\"]*\"[^>]*>(.*?)</(?:\w+:)?cite>",
    re.DOTALL,
)
_DOCUMENT_INDEX_RE = re.compile(r"\[Document\s+(\d+)(?:,\s*[Pp]age\s+(\d+))?\]")

# Lower value wins when two markers start at the same offset.
_PRIORITY = {
    MarkerGrammar.FILE_NAME: 0,
    MarkerGrammar.CITE_TAG: 1,
    MarkerGrammar.DOCUMENT_INDEX: 2,
}


@dataclass(frozen=True)
class Marker:
    """One citation marker occurrence in a piece of text."""

    grammar: MarkerGrammar
    start: int
    end: int
    label: str
    file_name: str | None = None
    position: int | None = None
    page: int | None = None
    inner: str = ""


def _int_or_none(value: str | None) -> int | None:
    return int(value) if value else None


def _iter_markers(text: str) -> list[Marker]:
    markers: list[Marker] = []
    for match in _FILE_NAME_RE.finditer(text):
        markers.append(
            Marker(
                grammar=MarkerGrammar.FILE_NAME,
                start=match.start(),
                end=match.end(),
                label=match.group(0)[1:-1],
                file_name=match.group(1).strip(),
                page=_int_or_none(match.group(2) or match.group(3)),
            )
        )
    for match in _CITE_TAG_RE.finditer(text):
        markers.append(
            Marker(
                grammar=MarkerGrammar.CITE_TAG,
                start=match.start(),
                end=match.end(),
                label=f'index="{match.group(1)}"',
                position=int(match.group(1)),
                inner=match.group(2),
            )
        )
    for match in _DOCUMENT_INDEX_RE.finditer(text):
        markers.append(
            Marker(
                grammar=MarkerGrammar.DOCUMENT_INDEX,
                start=match.start(),
                end=match.end(),
                label=match.group(0)[1:-1],
                position=int(match.group(1)) - 1,
                page=_int_or_none(match.group(2)),
            )
        )
    return markers


def scan_markers(text: str) -> list[Marker]:
    """Return non-overlapping markers in left-to-right order."""

    ordered = sorted(_iter_markers(text), key=lambda marker: (marker.start, _PRIORITY[marker.grammar]))
    accepted: list[Marker] = []
    cursor = 0
    for marker in ordered:
        if marker.start < cursor:
            continue
        accepted.append(marker)
        cursor = marker.end
    return accepted


def _page_of(citation_like: dict[str, Any]) -> int | None:
    for key in ("page", "pageNumber", "page_number"):
        value = citation_like.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
    return None


class CitationResolver:
    """Allocates citation indexes for one turn and rewrites marker text.

    Indexes come from a single per-turn counter: they start at 1, stay
    contiguous and are never reassigned. Citations bound to a source are
    deduplicated by `resolvedSourceId`; unresolved ones by marker label.
    """

    def __init__(self, registry: SourceRegistry, *, config: Settings | None = None) -> None:
        self._registry = registry
        self._config = config or default_settings
        self._by_key: dict[str, Citation] = {}
        self._unresolved: dict[str, Marker] = {}
        self._next_index = 1

    def citations(self) -> list[Citation]:
        ordered = sorted(self._by_key.values(), key=lambda citation: citation.index)
        return [citation.model_copy(deep=True) for citation in ordered]

    def lookup(self, marker: Marker) -> Source | None:
        if marker.grammar is MarkerGrammar.FILE_NAME:
            return self._registry.find_by_file_name(marker.file_name or "")
        if marker.position is None:
            return None
        return self._registry.find_by_positional_index(marker.position)

    def register(self, citation_like: dict[str, Any], source_id: str) -> Citation | None:
        """Bind an explicit citation to a registered source, allocating its index now."""

        source = self._registry.get(source_id)
        if source is None:
            logger.warning("Citation for unregistered source ignored", extra={"context": {"id": source_id}})
            return None
        return self._bind(source, page=_page_of(citation_like), url=as_text(citation_like.get("url")))

    @traceable(name="resolve_citations")
    def resolve_text(self, text: str) -> tuple[str, list[Citation]]:
        """Resolve every marker in `text`; returns rewritten text and all citations."""

        pieces: list[str] = []
        cursor = 0
        for marker in scan_markers(text):
            citation = self._resolve_marker(marker)
            reference = self._config.citation_reference_template.format(index=citation.index)
            pieces.append(text[cursor : marker.start])
            if marker.grammar is MarkerGrammar.CITE_TAG:
                pieces.append(f"{marker.inner.rstrip()}{reference}")
            else:
                pieces.append(reference)
            cursor = marker.end
        pieces.append(text[cursor:])
        return "".join(pieces), self.citations()

    def retry_unresolved(self) -> int:
        """Bind synthetic citations whose source has since been registered.

        The citation keeps its index. Returns the number of citations bound.
        """

        bound = 0
        for label, marker in list(self._unresolved.items()):
            source = self.lookup(marker)
            if source is None or source.id in self._by_key:
                continue
            self._promote(label, source)
            bound += 1
        return bound

    def _resolve_marker(self, marker: Marker) -> Citation:
        source = self.lookup(marker)
        if source is not None:
            if source.id not in self._by_key and marker.label in self._unresolved:
                return self._promote(marker.label, source)
            return self._bind(source, page=marker.page, url=None)

        key = f"unresolved:{marker.label}"
        existing = self._by_key.get(key)
        if existing is not None:
            return existing

        citation = Citation(
            id=marker.label,
            file_name=marker.file_name or marker.label,
            index=self._allocate(),
            page=marker.page,
        )
        self._by_key[key] = citation
        self._unresolved[marker.label] = marker
        logger.debug(
            "Citation marker did not match any source",
            extra={"context": {"label": marker.label, "index": citation.index}},
        )
        return citation

    def _bind(self, source: Source, *, page: int | None, url: str | None) -> Citation:
        existing = self._by_key.get(source.id)
        if existing is not None:
            return existing
        citation = Citation(
            id=source.id,
            file_name=source.file_name,
            index=self._allocate(),
            page=page,
            url=url or source.url,
            resolved_source_id=source.id,
        )
        self._by_key[source.id] = citation
        return citation

    def _promote(self, label: str, source: Source) -> Citation:
        synthetic = self._by_key.pop(f"unresolved:{label}")
        del self._unresolved[label]
        citation = synthetic.model_copy(
            update={
                "id": source.id,
                "file_name": source.file_name,
                "url": synthetic.url or source.url,
                "resolved_source_id": source.id,
            }
        )
        self._by_key[source.id] = citation
        logger.debug(
            "Unresolved citation bound to source",
            extra={"context": {"label": label, "id": source.id, "index": citation.index}},
        )
        return citation

    def _allocate(self) -> int:
        index = self._next_index
        self._next_index += 1
        return index
