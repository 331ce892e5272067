from __future__ import annotations

import sys
import textwrap
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from crosscheck_worker.engine.decoder import ResultDecoder
from crosscheck_worker.engine.jplag import RESULT_FILENAME, JplagEngine, build_run_args
from crosscheck_worker.errors import EngineInvocationError
from crosscheck_worker.storage.ledger import ArtifactStore

pytestmark = [
    allure.epic("Similarity Engine"),
    allure.feature("Subprocess Adapter"),
]

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)

_FAKE_ENGINE = textwrap.dedent(
    """
    import json
    import os
    import sys
    import zipfile

    args = sys.argv[1:]

    def value(flag):
        return args[args.index(flag) + 1] if flag in args else ""

    paths = [p for p in value("-new").split(",") + value("-old").split(",") if p]
    ids = [os.path.basename(p.rstrip("/")) for p in paths]
    with zipfile.ZipFile(value("-r"), "w") as archive:
        archive.writestr("overview.json", "{}")
        for index, first in enumerate(ids):
            for second in ids[index + 1:]:
                archive.writestr(
                    f"{first}_main-{second}_main.json",
                    json.dumps(
                        {
                            "id1": f"{first}_main",
                            "id2": f"{second}_main",
                            "similarities": {"AVG": 0.25, "MAX": 0.5},
                            "matches": [
                                {
                                    "file1": f"{first}_main/{first}/Program.cs",
                                    "file2": f"{second}_main/{second}/Program.cs",
                                    "start1": 1, "start1_col": 1, "end1": 1, "end1_col": 2,
                                    "start2": 1, "start2_col": 1, "end2": 1, "end2_col": 2,
                                }
                            ],
                        }
                    ),
                )
    print("engine done")
    """,
)


def _script(tmp_path: Path, body: str) -> list[str]:
    script = tmp_path / "fake_engine.py"
    script.write_text(body, encoding="utf-8")
    return [sys.executable, str(script)]


def _register(store: ArtifactStore, work_id: int) -> Path:
    tree = store.extraction_path(work_id)
    tree.mkdir(parents=True)
    (tree / "Program.cs").write_text("ab\ncd\n", encoding="utf-8")
    store.save(work_id, store.work_path(work_id), T0)
    return store.work_path(work_id)


def _engine(store: ArtifactStore, tmp_path: Path, command: list[str]) -> JplagEngine:
    return JplagEngine(
        command=command,
        language="csharp",
        workdir=tmp_path / "check" / "01",
        decoder=ResultDecoder(store),
    )


def test_build_run_args_without_old_works() -> None:
    args = build_run_args(
        command_prefix=["java", "-jar", "jplag.jar"],
        new_paths=[Path("/w/1"), Path("/w/2")],
        old_paths=[],
        language="csharp",
        result_path=Path("/check/01/result.zip"),
    )

    assert args == [
        "java",
        "-jar",
        "jplag.jar",
        "-new",
        "/w/1,/w/2",
        "-l",
        "csharp",
        "-r",
        "/check/01/result.zip",
    ]


def test_build_run_args_appends_old_works() -> None:
    args = build_run_args(
        command_prefix=["jplag"],
        new_paths=[Path("/w/1")],
        old_paths=[Path("/w/3"), Path("/w/4")],
        language="java",
        result_path=Path("r.zip"),
    )

    assert args[-2:] == ["-old", "/w/3,/w/4"]


def test_run_decodes_engine_result(store: ArtifactStore, tmp_path: Path) -> None:
    new = [_register(store, 1), _register(store, 2)]
    old = [_register(store, 3)]
    engine = _engine(store, tmp_path, _script(tmp_path, _FAKE_ENGINE))

    reports = engine.run(new, old)

    pairs = sorted((report.work1_id, report.work2_id) for report in reports)
    assert pairs == [(1, 2), (1, 3), (2, 3)]
    assert reports[0].matches[0].work1_length == 2
    assert not (engine.workdir / RESULT_FILENAME).exists()
    assert "engine done" in (engine.workdir / "engine_stdout.log").read_text()


def test_run_non_zero_exit_raises(store: ArtifactStore, tmp_path: Path) -> None:
    command = _script(tmp_path, "import sys\nsys.stderr.write('boom')\nsys.exit(3)\n")
    engine = _engine(store, tmp_path, command)

    with pytest.raises(EngineInvocationError) as excinfo:
        engine.run([_register(store, 1), _register(store, 2)], [])

    assert excinfo.value.exit_code == 3
    assert (engine.workdir / "engine_stderr.log").read_text() == "boom"


def test_run_without_result_file_raises(store: ArtifactStore, tmp_path: Path) -> None:
    engine = _engine(store, tmp_path, _script(tmp_path, "print('nothing')\n"))

    with pytest.raises(EngineInvocationError, match="without writing"):
        engine.run([_register(store, 1), _register(store, 2)], [])


def test_run_missing_executable_raises(store: ArtifactStore, tmp_path: Path) -> None:
    engine = _engine(store, tmp_path, [str(tmp_path / "no-such-engine")])

    with pytest.raises(EngineInvocationError, match="not found"):
        engine.run([_register(store, 1), _register(store, 2)], [])


def test_run_rejects_inputs_with_nothing_to_compare(store: ArtifactStore, tmp_path: Path) -> None:
    engine = _engine(store, tmp_path, _script(tmp_path, _FAKE_ENGINE))

    with pytest.raises(EngineInvocationError, match="No new works"):
        engine.run([], [_register(store, 1)])
    with pytest.raises(EngineInvocationError, match="nothing to be compared"):
        engine.run([_register(store, 2)], [])
