"""Configuration for the answer normalization pipeline.

Every component reads its knobs from one `Settings` object so behavior can be
tuned per deployment through environment variables or a `.env` file.

How this module is designed:
1. `Settings` loads typed values with safe defaults.
2. Nothing here is required, so importing the package never fails because an
   environment variable is missing.
3. Components accept an explicit `Settings` instance, which keeps tests free
   of environment mutation.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables.

    Note:
    The placeholder string is the only caller-visible sign that extraction
    failed entirely, so keep it short and user-facing.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(default=False, alias="DEBUG")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    empty_answer_placeholder: str = Field(
        default="No answer content could be extracted from the response.",
        alias="ANSWER_EMPTY_PLACEHOLDER",
    )
    supporting_content_key_chars: int = Field(default=50, alias="SUPPORTING_CONTENT_KEY_CHARS")
    citation_reference_template: str = Field(default="[{index}]", alias="CITATION_REFERENCE_TEMPLATE")
    json_dump_indent: int = Field(default=2, alias="JSON_DUMP_INDENT")
    max_pending_chars: int = Field(default=1_000_000, alias="MAX_PENDING_CHARS")
    strip_document_tags: bool = Field(default=True, alias="STRIP_DOCUMENT_TAGS")

    langsmith_api_key: str | None = Field(default=None, alias="LANGSMITH_API_KEY")
    langsmith_project: str = Field(default="answer-stream", alias="LANGSMITH_PROJECT")
    langchain_tracing_v2: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")


settings = Settings()
