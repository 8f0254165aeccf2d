"""Per-turn registry of normalized, deduplicated sources.

Design rules:
- A source id is derived once (`derive_source_id`) and never changes.
- Merges are non-regressive: an incoming payload only fills fields that are
  still empty. Already-shown excerpts, scores and metadata keys are never
  overwritten, so a slow enrichment fetch cannot clobber what is on screen.
- Insertion order is the canonical positional order used by `[Document N]`
  and cite-tag markers.

One registry belongs to exactly one answer turn; do not share it across turns.
"""

from __future__ import annotations

import json
from typing import Any

from answer_stream.data.cleaners import as_text
from answer_stream.rag.schemas import Source
from answer_stream.utils.ids import SOURCE_NAME_KEYS, derive_source_id, file_name_id
from answer_stream.utils.logging import get_logger

logger = get_logger(__name__)

_SCORE_KEYS = ("score", "relevanceScore", "confidenceScore")
_URL_KEYS = ("url", "sourceUrl", "source_url")
_METADATA_KEYS = ("author", "datePublished", "fileSize", "type", "hasXray")


def normalize_xray(value: Any) -> Any:
    """Decode xray payloads that may be JSON, JSON text, or doubly-encoded text.

    After one extra unwrap attempt, text that still does not parse is kept
    verbatim.
    """

    if not isinstance(value, str):
        return value
    decoded: Any = value
    for _ in range(2):
        if not isinstance(decoded, str):
            break
        try:
            decoded = json.loads(decoded)
        except (json.JSONDecodeError, ValueError):
            break
    return decoded


def _unique(values: list[Any]) -> list[Any]:
    seen: list[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _score(raw: dict[str, Any]) -> float | None:
    for key in _SCORE_KEYS:
        value = raw.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
    return None


def _excerpts(raw: dict[str, Any]) -> list[str]:
    excerpts = _text_list(raw.get("excerpts")) + _text_list(raw.get("snippets"))
    for key in ("text", "content"):
        text = as_text(raw.get(key))
        if text is not None:
            excerpts.append(text)
    if not excerpts:
        context = as_text(raw.get("documentContext"))
        if context is not None:
            excerpts.append(context)
    return _unique(excerpts)


def _metadata(raw: dict[str, Any]) -> dict[str, Any]:
    metadata = dict(raw["metadata"]) if isinstance(raw.get("metadata"), dict) else {}
    for key in _METADATA_KEYS:
        if raw.get(key) is not None and key not in metadata:
            metadata[key] = raw[key]
    return metadata


def _fields(raw: dict[str, Any]) -> dict[str, Any]:
    """Normalized fields present in `raw`; absent fields are omitted."""

    fields: dict[str, Any] = {}
    for key in SOURCE_NAME_KEYS:
        name = as_text(raw.get(key))
        if name is not None:
            fields["file_name"] = name.strip()
            break

    score = _score(raw)
    if score is not None:
        fields["score"] = score

    for key in _URL_KEYS:
        url = as_text(raw.get(key))
        if url is not None:
            fields["url"] = url
            break

    page_images = raw.get("pageImages", raw.get("page_images"))
    if isinstance(page_images, list) and page_images:
        fields["page_images"] = list(page_images)

    if raw.get("xray") is not None:
        fields["xray"] = normalize_xray(raw["xray"])

    excerpts = _excerpts(raw)
    if excerpts:
        fields["excerpts"] = excerpts
    highlights = _unique(_text_list(raw.get("highlights")))
    if highlights:
        fields["highlights"] = highlights
    metadata = _metadata(raw)
    if metadata:
        fields["metadata"] = metadata
    return fields


class SourceRegistry:
    """Evolving set of sources for one answer turn."""

    def __init__(self) -> None:
        self._sources: dict[str, Source] = {}
        self._named: set[str] = set()
        self.version = 0

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def sources(self) -> list[Source]:
        """Deep copies in canonical (insertion) order."""

        return [source.model_copy(deep=True) for source in self._sources.values()]

    def get(self, source_id: str) -> Source | None:
        source = self._sources.get(source_id)
        return source.model_copy(deep=True) if source is not None else None

    def find_by_file_name(self, name: str) -> Source | None:
        """Match on exact name first, then case-insensitively, then by basename."""

        target = name.strip()
        if not target:
            return None
        lowered = target.lower()
        basename = lowered.replace("\\", "/").rsplit("/", 1)[-1]

        candidates = [source for source in self._sources.values() if source.id in self._named]
        for matches in (
            lambda s: s.file_name == target,
            lambda s: s.file_name.lower() == lowered,
            lambda s: s.file_name.lower().replace("\\", "/").rsplit("/", 1)[-1] == basename,
        ):
            for source in candidates:
                if matches(source):
                    return source.model_copy(deep=True)
        return None

    def find_by_positional_index(self, position: int) -> Source | None:
        """Zero-based lookup in canonical order."""

        if position < 0 or position >= len(self._sources):
            return None
        source_id = list(self._sources)[position]
        return self._sources[source_id].model_copy(deep=True)

    def upsert(self, raw: dict[str, Any], position: int | None = None) -> str:
        """Insert or non-regressively merge a source-like payload; returns its id.

        `position` is the index of `raw` inside the payload list it came from.
        """

        source_id = derive_source_id(raw, position)
        fields = _fields(raw)

        if "file_name" in fields and source_id == file_name_id(fields["file_name"]):
            existing = self.find_by_file_name(fields.get("file_name", ""))
            if existing is not None:
                source_id = existing.id

        if source_id in self._sources:
            self._merge(source_id, fields)
            return source_id

        named = "file_name" in fields
        fields.setdefault("file_name", f"Document {source_id}")
        self._sources[source_id] = Source(id=source_id, **fields)
        if named:
            self._named.add(source_id)
        self.version += 1
        logger.debug("Registered source", extra={"context": {"id": source_id, "named": named}})
        return source_id

    def enrich(self, source_id: str, partial: dict[str, Any]) -> bool:
        """Fill absent fields of a known source; returns whether anything changed.

        Idempotent. Unknown ids are ignored: creating them here would shift
        positional indexes that markers may already rely on.
        """

        if source_id not in self._sources:
            logger.warning("Enrichment for unknown source ignored", extra={"context": {"id": source_id}})
            return False
        return self._merge(source_id, _fields(partial))

    def _merge(self, source_id: str, fields: dict[str, Any]) -> bool:
        current = self._sources[source_id]
        updates: dict[str, Any] = {}

        if "file_name" in fields and source_id not in self._named:
            updates["file_name"] = fields["file_name"]
        for key in ("score", "url", "xray"):
            if key in fields and getattr(current, key) is None:
                updates[key] = fields[key]
        for key in ("excerpts", "highlights", "page_images"):
            if key in fields and not getattr(current, key):
                updates[key] = fields[key]

        incoming_metadata = fields.get("metadata", {})
        missing_keys = {key: value for key, value in incoming_metadata.items() if key not in current.metadata}
        if missing_keys:
            updates["metadata"] = {**current.metadata, **missing_keys}

        if not updates:
            return False

        self._sources[source_id] = current.model_copy(update=updates, deep=True)
        if "file_name" in updates:
            self._named.add(source_id)
        self.version += 1
        logger.debug(
            "Merged source fields",
            extra={"context": {"id": source_id, "fields": sorted(updates)}},
        )
        return True
