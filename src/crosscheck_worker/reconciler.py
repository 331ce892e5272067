"""Splits a comparison group into newly assigned and already known works."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from crosscheck_worker.models import Task, WorkEntry
from crosscheck_worker.rpc.base import OrchestratorClient
from crosscheck_worker.storage.common import utc_now
from crosscheck_worker.storage.ledger import ArtifactStore
from crosscheck_worker.submissions import SubmissionFetcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Reconciliation:
    """Resolved membership of one group, partitioned for the engine."""

    group_id: int
    task_ids: list[int]
    members: list[WorkEntry] = field(default_factory=list)
    new_paths: list[Path] = field(default_factory=list)
    old_paths: list[Path] = field(default_factory=list)

    @property
    def comparable(self) -> bool:
        """True when there are at least two works to compare."""

        return len(self.members) > 1


class TaskReconciler:
    """Makes sure every work of a batch's group is on disk and classifies it."""

    def __init__(
        self,
        *,
        client: OrchestratorClient,
        store: ArtifactStore,
        fetcher: SubmissionFetcher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.store = store
        self.fetcher = fetcher
        self.clock = clock

    def reconcile(self, tasks: Sequence[Task]) -> Reconciliation:
        """Resolve the group of ``tasks`` into new and old submission paths.

        Raises ``TransientRPCError`` when the group membership cannot be
        listed and ``StoreInconsistencyError`` when an indexed work lost its
        directory; both fail the whole batch.
        """

        if not tasks:
            raise ValueError("Cannot reconcile an empty batch.")
        group_id = tasks[0].group_id
        mixed = sorted({task.group_id for task in tasks if task.group_id != group_id})
        if mixed:
            raise ValueError(f"Batch mixes groups: {group_id} and {mixed}")

        new_work_ids = {task.work_id for task in tasks}
        result = Reconciliation(group_id=group_id, task_ids=[task.task_id for task in tasks])

        group_work_ids = list(dict.fromkeys(self.client.list_group_submissions(group_id)))

        cached: dict[int, WorkEntry] = {}
        missing: list[int] = []
        for work_id in group_work_ids:
            entry = self.store.get(work_id)
            if entry is None:
                missing.append(work_id)
            else:
                cached[work_id] = entry
        self.store.touch(cached.keys(), self.clock())

        resolved = dict(cached)
        if missing:
            fetched = self.fetcher.fetch_all(missing)
            if not fetched.complete:
                logger.warning(
                    "Group %s: fetched %d of %d missing works, last error: %s",
                    group_id,
                    len(fetched.entries),
                    len(missing),
                    fetched.last_error,
                )
            for entry in fetched.entries:
                resolved[entry.work_id] = entry

        for work_id in group_work_ids:
            entry = resolved.get(work_id)
            if entry is None:
                continue
            result.members.append(entry)
            if work_id in new_work_ids:
                result.new_paths.append(entry.path)
            else:
                result.old_paths.append(entry.path)

        logger.info(
            "Group %s reconciled: %d members (%d new, %d old)",
            group_id,
            len(result.members),
            len(result.new_paths),
            len(result.old_paths),
        )
        return result
