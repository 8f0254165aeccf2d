"""Lifecycle states of one answer turn."""

from __future__ import annotations

from enum import StrEnum


class AnswerState(StrEnum):
    """Turn lifecycle: EMPTY -> STREAMING -> FINALIZED (or ABORTED).

    FINALIZED and ABORTED are terminal; records arriving afterwards are
    logged and ignored.
    """

    EMPTY = "empty"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED = "aborted"

    @property
    def is_closed(self) -> bool:
        return self in (AnswerState.FINALIZED, AnswerState.ABORTED)
