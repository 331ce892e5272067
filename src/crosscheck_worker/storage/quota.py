"""Disk quota enforcement for the artifact store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from crosscheck_worker.errors import QuotaEnforcementError
from crosscheck_worker.storage.fs import directory_size
from crosscheck_worker.storage.ledger import ArtifactStore

logger = logging.getLogger(__name__)

EVICTION_BATCH_SIZE = 10


@dataclass(slots=True)
class QuotaCheckResult:
    """Outcome of one quota check."""

    limit_bytes: int
    initial_bytes: int
    final_bytes: int
    evicted: list[int] = field(default_factory=list)
    exhausted: bool = False

    @property
    def within_limit(self) -> bool:
        return self.final_bytes <= self.limit_bytes


class QuotaEnforcer:
    """Keeps the store under a byte budget by evicting least recently used works.

    The limit is a best-effort ceiling: when every record has been evicted and
    the store is still too large (the index database alone, or untracked
    files), the check still succeeds.
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        limit_bytes: int,
        batch_size: int = EVICTION_BATCH_SIZE,
    ) -> None:
        if limit_bytes < 0:
            raise ValueError("limit_bytes must be >= 0")
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.store = store
        self.limit_bytes = limit_bytes
        self.batch_size = batch_size

    def measure(self) -> int:
        """Total bytes currently used by the store root."""

        try:
            return directory_size(self.store.root)
        except OSError as error:
            raise QuotaEnforcementError(
                f"Cannot measure store size at {self.store.root}: {error}",
            ) from error

    def check(self) -> QuotaCheckResult:
        size = self.measure()
        result = QuotaCheckResult(
            limit_bytes=self.limit_bytes,
            initial_bytes=size,
            final_bytes=size,
        )
        while size > self.limit_bytes:
            batch = self.store.oldest(self.batch_size)
            if not batch:
                result.exhausted = True
                logger.warning(
                    "Store still uses %d bytes over the %d byte limit with nothing left to evict",
                    size,
                    self.limit_bytes,
                )
                break
            for entry in batch:
                size = max(0, size - self.store.evict(entry))
                result.evicted.append(entry.work_id)

        result.final_bytes = size
        if result.evicted:
            logger.info(
                "Quota check evicted %d works: %d -> %d bytes (limit %d)",
                len(result.evicted),
                result.initial_bytes,
                result.final_bytes,
                self.limit_bytes,
            )
        return result
