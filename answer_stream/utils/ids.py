"""Deterministic identifiers for sources and diagnostic records.

A source referenced from several payloads must always land on the same id,
otherwise the registry would hold duplicates and positional markers would
drift.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

# Explicit identifier keys, in priority order.
SOURCE_ID_KEYS = ("id", "documentId", "fileId")
SOURCE_NAME_KEYS = ("fileName", "file_name", "name", "title", "document_name")


def stable_hash(payload: Any, *, length: int = 16) -> str:
    """Return a deterministic short hash for any JSON-serializable payload."""

    canonical = json.dumps(payload, ensure_ascii=True, sort_keys=True, default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return digest[:length]


def file_name_id(file_name: str) -> str:
    """Id used for sources known only by their file name."""

    return f"file-{file_name}"


def derive_source_id(raw: dict[str, Any], position: int | None = None) -> str:
    """Derive the stable id of a source-like payload.

    Order: `id`, `documentId`, `fileId`, then the file name or one of its
    aliases (as `file-<name>`), then the position inside the payload list the
    source came from (as `source-<n>`). A source with none of these, outside
    any list, is keyed by a hash of its content, so re-sending the same payload
    always lands on the same id. Empty values are skipped.
    """

    for key in SOURCE_ID_KEYS:
        value = raw.get(key)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (str, int, float)) and str(value).strip():
            return str(value).strip()

    for key in SOURCE_NAME_KEYS:
        name = raw.get(key)
        if isinstance(name, str) and name.strip():
            return file_name_id(name.strip())

    if position is not None:
        return f"source-{position}"
    return f"source-{stable_hash(raw, length=12)}"
