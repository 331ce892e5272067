"""Controllers for worker CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path

from crosscheck_worker.config import Settings
from crosscheck_worker.engine.decoder import ResultDecoder
from crosscheck_worker.engine.jplag import JplagEngine
from crosscheck_worker.http.fetcher import HttpFetcher
from crosscheck_worker.logs import attach_log_file, detach_log_file
from crosscheck_worker.reconciler import TaskReconciler
from crosscheck_worker.rpc.http_client import HttpOrchestratorClient
from crosscheck_worker.storage.ledger import ArtifactStore, SweepResult
from crosscheck_worker.storage.quota import QuotaEnforcer
from crosscheck_worker.submissions import SubmissionFetcher
from crosscheck_worker.worker import CrossCheckWorker, WorkerRunSummary

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunCommand:
    """CLI inputs for the worker loop command."""

    work_dir: Path | None
    once: bool
    max_batches: int | None


@dataclass(slots=True)
class StoreCommand:
    """CLI inputs for store maintenance commands."""

    work_dir: Path | None


@dataclass(slots=True)
class DecodeCommand:
    """CLI inputs for offline archive decoding."""

    work_dir: Path | None
    archive_path: Path


class WorkerCliController:
    """Coordinates worker command execution."""

    def run_worker(self, command: WorkerRunCommand) -> list[str]:
        settings = Settings.from_env(work_dir=command.work_dir)
        settings.validate()

        with ExitStack() as stack:
            handler = attach_log_file(settings.logs_dir)
            stack.callback(detach_log_file, handler)
            store = stack.enter_context(_store(settings))
            sweep = store.sweep()
            _log_sweep(sweep)

            client = stack.enter_context(
                HttpOrchestratorClient(
                    base_url=settings.rpc.base_url,
                    auth_key=settings.rpc.auth_key,
                    timeout_seconds=settings.rpc.request_timeout_seconds,
                ),
            )
            http = stack.enter_context(
                HttpFetcher(
                    timeout_seconds=settings.download.request_timeout_seconds,
                    max_retries=settings.download.max_retries,
                ),
            )
            worker = build_worker(settings=settings, store=store, client=client, http=http)

            if command.once:
                summary = worker.run_once()
            else:
                summary = worker.run_loop(max_batches=command.max_batches)

        return [
            _summary_line(summary),
            f"Store sweep at startup: orphans_removed={len(sweep.orphans_removed)} "
            f"ghosts_dropped={len(sweep.ghosts_dropped)}",
        ]

    def store_stats(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(work_dir=command.work_dir)
        settings.validate_storage()
        with _store(settings) as store:
            quota = QuotaEnforcer(store, limit_bytes=settings.storage_limit_bytes)
            size = quota.measure()
            count = store.count()
            entries = store.entries()

        lines = [
            f"Store: {settings.storage_dir}",
            f"works={count} size_bytes={size} limit_bytes={settings.storage_limit_bytes} "
            f"within_limit={'yes' if size <= settings.storage_limit_bytes else 'no'}",
        ]
        if entries:
            lines.append(
                f"oldest_access={entries[0].last_access_at.isoformat()} "
                f"newest_access={entries[-1].last_access_at.isoformat()}",
            )
        return lines

    def store_gc(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(work_dir=command.work_dir)
        settings.validate_storage()
        with _store(settings) as store:
            result = QuotaEnforcer(store, limit_bytes=settings.storage_limit_bytes).check()

        lines = [
            "Quota check completed: "
            f"initial_bytes={result.initial_bytes} final_bytes={result.final_bytes} "
            f"limit_bytes={result.limit_bytes} evicted={len(result.evicted)}",
        ]
        if result.evicted:
            lines.append("evicted_works=" + ",".join(str(work_id) for work_id in result.evicted))
        if result.exhausted:
            lines.append("Store is still over the limit with nothing left to evict.")
        return lines

    def store_sweep(self, command: StoreCommand) -> list[str]:
        settings = Settings.from_env(work_dir=command.work_dir)
        settings.validate_storage()
        with _store(settings) as store:
            result = store.sweep()

        lines = [
            "Store sweep completed: "
            f"orphans_removed={len(result.orphans_removed)} "
            f"ghosts_dropped={len(result.ghosts_dropped)} "
            f"failures={len(result.failures)}",
        ]
        lines.extend(f"  removed {path}" for path in result.orphans_removed)
        lines.extend(f"  dropped record of work {work_id}" for work_id in result.ghosts_dropped)
        lines.extend(f"  failed to remove {path}" for path in result.failures)
        return lines

    def decode(self, command: DecodeCommand) -> list[str]:
        settings = Settings.from_env(work_dir=command.work_dir)
        settings.validate_storage()
        with _store(settings) as store:
            decoder = ResultDecoder(store, first_line_columns=settings.engine.first_line_columns)
            reports = decoder.decode(command.archive_path)

        return [json.dumps(report.to_payload(), sort_keys=True) for report in reports]


def build_worker(
    *,
    settings: Settings,
    store: ArtifactStore,
    client: HttpOrchestratorClient,
    http: HttpFetcher,
) -> CrossCheckWorker:
    """Wire the pipeline stages of one worker from settings."""

    fetcher = SubmissionFetcher(client=client, store=store, http=http)
    reconciler = TaskReconciler(client=client, store=store, fetcher=fetcher)
    decoder = ResultDecoder(store, first_line_columns=settings.engine.first_line_columns)
    engine = JplagEngine(
        command=settings.engine.command_prefix(),
        language=settings.engine.language,
        workdir=settings.engine_workdir,
        decoder=decoder,
    )
    return CrossCheckWorker(
        client=client,
        reconciler=reconciler,
        engine=engine,
        quota=QuotaEnforcer(store, limit_bytes=settings.storage_limit_bytes),
        initial_delay_seconds=settings.polling.initial_delay_seconds,
        busy_interval_seconds=settings.polling.busy_interval_seconds,
        idle_interval_seconds=settings.polling.idle_interval_seconds,
    )


@contextmanager
def _store(settings: Settings) -> Iterator[ArtifactStore]:
    store = ArtifactStore(settings.storage_dir, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    store.init_schema()
    try:
        yield store
    finally:
        store.close()


def _log_sweep(result: SweepResult) -> None:
    if result.orphans_removed or result.ghosts_dropped or result.failures:
        logger.info(
            "Startup sweep: %d orphan directories removed, %d records dropped, %d failures",
            len(result.orphans_removed),
            len(result.ghosts_dropped),
            len(result.failures),
        )


def _summary_line(summary: WorkerRunSummary) -> str:
    return (
        "Worker finished: "
        f"batches={summary.batches} succeeded={summary.succeeded} failed={summary.failed} "
        f"skipped={summary.skipped} reports_sent={summary.reports_sent} "
        f"report_failures={summary.report_failures} idle_polls={summary.idle_polls}"
    )

