"""CLI entrypoint for crosscheck-worker."""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from crosscheck_worker import __version__
from crosscheck_worker.controllers import (
    DecodeCommand,
    StoreCommand,
    WorkerCliController,
    WorkerRunCommand,
)
from crosscheck_worker.errors import CrossCheckError
from crosscheck_worker.logs import setup_logging

click.rich_click.USE_MARKDOWN = True
WORKER_CONTROLLER = WorkerCliController()

CommandT = TypeVar("CommandT")

_work_dir_option = click.option(
    "--work-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Worker data directory (default: CROSSCHECK_WORK_DIR or `.crosscheck`).",
)


@click.group()
@click.version_option(version=__version__, prog_name="crosscheck-worker")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    envvar="CROSSCHECK_LOG_LEVEL",
    help="Logging verbosity.",
)
def crosscheck_worker(log_level: str) -> None:
    """Plagiarism cross-check worker.

    Polls the orchestrator for comparison tasks, runs the similarity engine
    on each group and sends pair reports back.
    """

    setup_logging(log_level)


@crosscheck_worker.command("run")
@_work_dir_option
@click.option("--once", is_flag=True, default=False, help="Run a single polling cycle and exit.")
@click.option(
    "--max-batches",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many processed batches.",
)
def run(work_dir: Path | None, once: bool, max_batches: int | None) -> None:
    """Run the polling worker until interrupted."""

    _emit_lines(
        _invoke(
            WORKER_CONTROLLER.run_worker,
            WorkerRunCommand(work_dir=work_dir, once=once, max_batches=max_batches),
        ),
    )


@crosscheck_worker.group()
def store() -> None:
    """Local artifact store maintenance."""


@store.command("stats")
@_work_dir_option
def store_stats(work_dir: Path | None) -> None:
    """Show size and entry count of the artifact store."""

    _emit_lines(_invoke(WORKER_CONTROLLER.store_stats, StoreCommand(work_dir=work_dir)))


@store.command("gc")
@_work_dir_option
def store_gc(work_dir: Path | None) -> None:
    """Evict least recently used works until the store fits its size limit."""

    _emit_lines(_invoke(WORKER_CONTROLLER.store_gc, StoreCommand(work_dir=work_dir)))


@store.command("sweep")
@_work_dir_option
def store_sweep(work_dir: Path | None) -> None:
    """Remove orphan directories and records whose directory is gone."""

    _emit_lines(_invoke(WORKER_CONTROLLER.store_sweep, StoreCommand(work_dir=work_dir)))


@crosscheck_worker.command("decode")
@_work_dir_option
@click.argument(
    "archive_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
)
def decode(work_dir: Path | None, archive_path: Path) -> None:
    """Decode an engine result archive against the local store and print the reports."""

    _emit_lines(
        _invoke(
            WORKER_CONTROLLER.decode,
            DecodeCommand(work_dir=work_dir, archive_path=archive_path),
        ),
    )


def _invoke(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (ValueError, CrossCheckError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)
