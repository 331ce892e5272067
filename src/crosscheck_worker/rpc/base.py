"""Call set the worker needs from the task orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from crosscheck_worker.models import ReportItem, Task


class OrchestratorClient(Protocol):
    """Protocol implemented by orchestrator transports.

    Implementations raise ``TransientRPCError`` for any failed call.
    """

    def poll_tasks(self) -> list[Task]:
        """Claim newly assigned tasks of one group; empty when there is no work."""

    def list_group_submissions(self, group_id: int) -> list[int]:
        """All work ids of a comparison group."""

    def resolve_download_links(self, work_ids: Sequence[int]) -> dict[int, str]:
        """Download URL per work id; unavailable works are omitted."""

    def submit_report(self, report: ReportItem) -> None:
        """Send the similarity report of one pair."""

    def close_tasks(self, task_ids: Sequence[int], *, succeeded: bool) -> None:
        """Acknowledge a batch as completed or failed."""
