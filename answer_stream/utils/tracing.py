"""LangSmith tracing utilities.

Tracing is off unless both `LANGCHAIN_TRACING_V2` and `LANGSMITH_API_KEY` are
set; the decorator returned by `traceable` is then a pass-through inside
LangSmith itself.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any, TypeVar

from langsmith import traceable as langsmith_traceable

from answer_stream.config import settings

F = TypeVar("F", bound=Callable[..., Any])


def configure_langsmith_tracing() -> bool:
    """Export tracing env flags from settings and return whether tracing is on."""

    enabled = bool(settings.langchain_tracing_v2 and settings.langsmith_api_key)
    exported = {
        "LANGCHAIN_TRACING_V2": "true" if enabled else "false",
        "LANGSMITH_PROJECT": settings.langsmith_project,
        "LANGSMITH_API_KEY": settings.langsmith_api_key,
    }
    for key, value in exported.items():
        if value:
            os.environ[key] = value
    return enabled


def traceable(*, name: str, run_type: str = "parser") -> Callable[[F], F]:
    """Return the LangSmith trace decorator for a pipeline step."""

    return langsmith_traceable(name=name, run_type=run_type)
