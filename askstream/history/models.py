# askstream/history/models.py
from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class HistoryRecord(BaseModel):
    """
    One completed ask, written once the stream has finished.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    question: str
    answer: str
    ts: int = Field(default_factory=now_ms)
