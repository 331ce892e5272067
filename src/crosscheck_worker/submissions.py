"""Download and registration of submissions missing from the local store."""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from crosscheck_worker.errors import ArtifactConflictError, NotAvailableError, TransientRPCError
from crosscheck_worker.http.fetcher import HttpFetcher
from crosscheck_worker.models import WorkEntry
from crosscheck_worker.rpc.base import OrchestratorClient
from crosscheck_worker.storage.common import utc_now
from crosscheck_worker.storage.fs import prepare_directory, remove_tree
from crosscheck_worker.storage.ledger import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FetchAllResult:
    """Entries fetched by one ``fetch_all`` call plus the last failure seen."""

    entries: list[WorkEntry] = field(default_factory=list)
    last_error: Exception | None = None

    @property
    def complete(self) -> bool:
        return self.last_error is None

    @property
    def work_ids(self) -> list[int]:
        return [entry.work_id for entry in self.entries]


class SubmissionFetcher:
    """Resolves download links, downloads and unpacks works, registers them."""

    def __init__(
        self,
        *,
        client: OrchestratorClient,
        store: ArtifactStore,
        http: HttpFetcher,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.store = store
        self.http = http
        self.clock = clock

    def resolve(self, work_ids: Iterable[int]) -> dict[int, str]:
        """Download URL per work id; works without a link are absent."""

        ids = list(dict.fromkeys(work_ids))
        if not ids:
            return {}
        return self.client.resolve_download_links(ids)

    def fetch(self, work_id: int, url: str) -> WorkEntry:
        """Download one work archive, unpack it and register it in the store."""

        download = self.http.download(url)
        if not download.is_success:
            raise NotAvailableError(work_id, download.error or f"HTTP {download.status_code}")

        target = self.store.extraction_path(work_id)
        try:
            prepare_directory(target)
            _extract_archive(download.content, target)
        except (zipfile.BadZipFile, OSError, ValueError) as error:
            _discard_partial_tree(self.store.work_path(work_id))
            raise NotAvailableError(work_id, f"cannot extract archive: {error}") from error

        try:
            entry = self.store.save(work_id, self.store.work_path(work_id), self.clock())
        except ArtifactConflictError:
            existing = self.store.get(work_id)
            if existing is None:
                raise
            logger.info("Work %s was registered concurrently, reusing it", work_id)
            return existing
        logger.debug("Fetched work %s into %s", work_id, entry.path)
        return entry

    def fetch_all(self, work_ids: Iterable[int]) -> FetchAllResult:
        """Fetch works one by one; failures are logged and skipped."""

        ids = list(dict.fromkeys(work_ids))
        result = FetchAllResult()
        if not ids:
            return result

        try:
            links = self.resolve(ids)
        except TransientRPCError as error:
            logger.error("Cannot resolve download links for works %s: %s", ids, error)
            result.last_error = error
            return result

        for work_id in ids:
            url = links.get(work_id)
            if url is None:
                logger.info("No download link for work %s, skipping", work_id)
                continue
            try:
                entry = self.fetch(work_id, url)
            except NotAvailableError as error:
                logger.warning("%s (%s)", error, url)
                result.last_error = error
                continue
            result.entries.append(entry)
        return result


def _extract_archive(content: bytes, target: Path) -> None:
    root = target.resolve()
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        for member in archive.infolist():
            destination = (root / member.filename).resolve()
            if destination != root and not destination.is_relative_to(root):
                raise ValueError(f"archive member escapes target directory: {member.filename}")
        archive.extractall(root)


def _discard_partial_tree(path: Path) -> None:
    try:
        remove_tree(path)
    except OSError as error:
        logger.error("Failed to clean up partial download at %s: %s", path, error)
