"""Subprocess adapter for the JPlag similarity engine."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from crosscheck_worker.engine.decoder import ResultDecoder
from crosscheck_worker.errors import EngineInvocationError
from crosscheck_worker.models import ReportItem

logger = logging.getLogger(__name__)

RESULT_FILENAME = "result.zip"
STDOUT_FILENAME = "engine_stdout.log"
STDERR_FILENAME = "engine_stderr.log"


class JplagEngine:
    """Run the engine on two path lists and decode the archive it writes."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        language: str,
        workdir: Path,
        decoder: ResultDecoder,
    ) -> None:
        self.command = list(command)
        self.language = language
        self.workdir = workdir
        self.decoder = decoder

    def run(self, new_paths: Sequence[Path], old_paths: Sequence[Path]) -> list[ReportItem]:
        result_path = self.workdir / RESULT_FILENAME
        try:
            self._execute(new_paths=new_paths, old_paths=old_paths, result_path=result_path)
            return self.decoder.decode(result_path)
        finally:
            try:
                _remove_file(result_path)
            except OSError as error:
                logger.warning("Cannot remove engine result %s: %s", result_path, error)

    def _execute(
        self,
        *,
        new_paths: Sequence[Path],
        old_paths: Sequence[Path],
        result_path: Path,
    ) -> None:
        if not new_paths:
            raise EngineInvocationError("No new works to analyze.")
        if not old_paths and len(new_paths) == 1:
            raise EngineInvocationError("A single new work has nothing to be compared with.")

        run_args = build_run_args(
            command_prefix=self.command,
            new_paths=new_paths,
            old_paths=old_paths,
            language=self.language,
            result_path=result_path,
        )
        try:
            self.workdir.mkdir(parents=True, exist_ok=True)
            _remove_file(result_path)
        except OSError as error:
            raise EngineInvocationError(f"Cannot prepare engine workdir: {error}") from error

        stdout_path = self.workdir / STDOUT_FILENAME
        stderr_path = self.workdir / STDERR_FILENAME
        logger.info(
            "Running engine on %d new and %d old works",
            len(new_paths),
            len(old_paths),
        )
        try:
            with (
                stdout_path.open("w", encoding="utf-8") as stdout_handle,
                stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                completed = subprocess.run(  # noqa: S603
                    run_args,
                    stdout=stdout_handle,
                    stderr=stderr_handle,
                    check=False,
                )
        except FileNotFoundError as error:
            raise EngineInvocationError(f"Engine command not found: {run_args[0]}") from error
        except OSError as error:
            raise EngineInvocationError(f"Engine failed to start: {error}") from error

        if completed.returncode != 0:
            raise EngineInvocationError(
                f"Engine exited with code {completed.returncode}, see {stderr_path}",
                exit_code=completed.returncode,
            )
        if not result_path.is_file():
            raise EngineInvocationError(f"Engine finished without writing {result_path}")


def build_run_args(
    *,
    command_prefix: Sequence[str],
    new_paths: Sequence[Path],
    old_paths: Sequence[Path],
    language: str,
    result_path: Path,
) -> list[str]:
    """Engine argv: prefix, new works, language, result path, then old works if any."""

    if not command_prefix:
        raise EngineInvocationError("Engine command is empty.")
    run_args = [
        *command_prefix,
        "-new",
        ",".join(str(path) for path in new_paths),
        "-l",
        language,
        "-r",
        str(result_path),
    ]
    if old_paths:
        run_args.extend(["-old", ",".join(str(path) for path in old_paths)])
    return run_args


def _remove_file(path: Path) -> None:
    if path.is_file():
        path.unlink()
