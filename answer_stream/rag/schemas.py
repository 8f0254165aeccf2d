"""Canonical, renderer-agnostic answer models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Model-produced text that a renderer must escape before display.
UNTRUSTED_TEXT_FIELDS = (
    "content",
    "thoughtProcess",
    "supportingContent.title",
    "supportingContent.content",
    "citations.fileName",
    "followupQuestions",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Source(_CamelModel):
    """A document referenced by the answer."""

    id: str
    file_name: str = Field(alias="fileName")
    score: float | None = None
    excerpts: list[str] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)
    url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    page_images: list[Any] = Field(default_factory=list, alias="pageImages")
    xray: Any = None


class Citation(_CamelModel):
    """One numbered reference; `index` is 1-based and never reassigned."""

    id: str
    file_name: str = Field(alias="fileName")
    index: int
    page: int | None = None
    url: str | None = None
    resolved_source_id: str | None = Field(default=None, alias="resolvedSourceId")


class SupportingContentItem(BaseModel):
    """An excerpt shown alongside the answer to substantiate it."""

    title: str
    content: str
    source: str | None = None

    def dedup_key(self, prefix_chars: int = 50) -> tuple[str, str]:
        return (self.title, self.content[:prefix_chars])


class Answer(_CamelModel):
    """Read-only snapshot of one chat turn."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    content: str = ""
    thought_process: str = Field(default="", alias="thoughtProcess")
    supporting_content: list[SupportingContentItem] = Field(default_factory=list, alias="supportingContent")
    citations: list[Citation] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    followup_questions: list[str] = Field(default_factory=list, alias="followupQuestions")
    is_streaming: bool = Field(default=False, alias="isStreaming")

    def escaped(self, sanitizer: Callable[[str], str]) -> Answer:
        """Return a copy with `sanitizer` applied to every untrusted text field.

        Sanitization itself belongs to the renderer; this only fixes which
        fields it has to cover.
        """

        return self.model_copy(
            update={
                "content": sanitizer(self.content),
                "thought_process": sanitizer(self.thought_process),
                "supporting_content": [
                    item.model_copy(update={"title": sanitizer(item.title), "content": sanitizer(item.content)})
                    for item in self.supporting_content
                ],
                "citations": [
                    citation.model_copy(update={"file_name": sanitizer(citation.file_name)})
                    for citation in self.citations
                ],
                "followup_questions": [sanitizer(question) for question in self.followup_questions],
            }
        )
