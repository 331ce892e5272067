"""Domain models shared by the worker pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class WorkerState(str, Enum):
    """Stages of one polling cycle."""

    IDLE = "idle"
    POLLING = "polling"
    RECONCILING = "reconciling"
    ANALYZING = "analyzing"
    REPORTING = "reporting"
    CLOSING = "closing"


@dataclass(slots=True, frozen=True)
class Task:
    """Server-assigned unit naming one submission for the next comparison run."""

    task_id: int
    group_id: int
    work_id: int


@dataclass(slots=True, frozen=True)
class WorkEntry:
    """Cached submission: extracted tree on disk plus its last access time."""

    work_id: int
    path: Path
    last_access_at: datetime


@dataclass(slots=True, frozen=True)
class LineSpan:
    """1-based line/column span as reported by the engine."""

    start_line: int
    start_col: int
    end_line: int
    end_col: int


@dataclass(slots=True)
class MatchItem:
    """Matched region pair; offsets and lengths count Unicode code points."""

    work1_file: str
    work2_file: str
    work1_offset: int = 0
    work1_length: int = 0
    work2_offset: int = 0
    work2_length: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "work1_file": self.work1_file,
            "work1_offset": self.work1_offset,
            "work1_length": self.work1_length,
            "work2_file": self.work2_file,
            "work2_offset": self.work2_offset,
            "work2_length": self.work2_length,
        }


@dataclass(slots=True)
class ReportItem:
    """Similarity report for one analyzed pair of works."""

    work1_id: int
    work2_id: int
    avg_similarity: float
    max_similarity: float
    matches: list[MatchItem] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "work1_id": self.work1_id,
            "work2_id": self.work2_id,
            "avg_similarity": self.avg_similarity,
            "max_similarity": self.max_similarity,
            "matches": [match.to_payload() for match in self.matches],
        }
