"""Tagged record variants produced by the classifier.

A `Record` is one discrete unit parsed out of the raw stream. The `kind`
field is the discriminator, so a record round-trips through pydantic without
losing its variant.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class RecordKind(StrEnum):
    CITATION = "citation"
    SUPPORTING_CONTENT = "supporting_content"
    THOUGHT_PROCESS = "thought_process"
    DONE = "done"
    CONTEXT_UPDATE = "context_update"
    PLAIN_DELTA = "plain_delta"
    UNKNOWN = "unknown"


class CitationRecord(BaseModel):
    """An explicit citation announced by the backend."""

    kind: Literal[RecordKind.CITATION] = RecordKind.CITATION
    citation: dict[str, Any]
    payload: dict[str, Any]


class SupportingContentRecord(BaseModel):
    kind: Literal[RecordKind.SUPPORTING_CONTENT] = RecordKind.SUPPORTING_CONTENT
    payload: dict[str, Any]


class ThoughtProcessRecord(BaseModel):
    kind: Literal[RecordKind.THOUGHT_PROCESS] = RecordKind.THOUGHT_PROCESS
    payload: dict[str, Any]


class DoneRecord(BaseModel):
    """Terminal record; its content, when present, replaces the streamed text."""

    kind: Literal[RecordKind.DONE] = RecordKind.DONE
    payload: dict[str, Any]


class ContextUpdateRecord(BaseModel):
    """Structured update: thoughts, data points, sources or a composite answer."""

    kind: Literal[RecordKind.CONTEXT_UPDATE] = RecordKind.CONTEXT_UPDATE
    payload: dict[str, Any]


class PlainDeltaRecord(BaseModel):
    """A content increment that is appended as-is."""

    kind: Literal[RecordKind.PLAIN_DELTA] = RecordKind.PLAIN_DELTA
    text: str


class UnknownRecord(BaseModel):
    """Unrecognized payload kept for diagnostics, never rendered."""

    kind: Literal[RecordKind.UNKNOWN] = RecordKind.UNKNOWN
    payload: Any = None
    fingerprint: str


Record = Annotated[
    Union[
        CitationRecord,
        SupportingContentRecord,
        ThoughtProcessRecord,
        DoneRecord,
        ContextUpdateRecord,
        PlainDeltaRecord,
        UnknownRecord,
    ],
    Field(discriminator="kind"),
]
