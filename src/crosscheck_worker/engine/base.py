"""Engine interface used by the worker loop."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from crosscheck_worker.models import ReportItem


class AnalysisEngine(Protocol):
    """Protocol implemented by similarity engine adapters."""

    def run(self, new_paths: Sequence[Path], old_paths: Sequence[Path]) -> list[ReportItem]:
        """Compare new works with each other and with old works.

        Raises ``EngineInvocationError`` when the engine fails and
        ``DecodeError`` when its result cannot be read.
        """
