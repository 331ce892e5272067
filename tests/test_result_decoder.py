from __future__ import annotations

import json
import zipfile
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest
from fakes import zip_bytes

from crosscheck_worker.engine.decoder import (
    ResultDecoder,
    is_auxiliary_entry,
    parse_work_id,
    strip_composite_prefix,
)
from crosscheck_worker.errors import DecodeError
from crosscheck_worker.storage.ledger import ArtifactStore

pytestmark = [
    allure.epic("Result Decoding"),
    allure.feature("Result Archive"),
]

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
SOURCE = "ab\ncd\n"


def _register(store: ArtifactStore, work_id: int) -> None:
    tree = store.extraction_path(work_id)
    tree.mkdir(parents=True)
    (tree / "Program.cs").write_text(SOURCE, encoding="utf-8")
    store.save(work_id, store.work_path(work_id), T0)


def _match(file1: str, file2: str, **overrides: int) -> dict[str, object]:
    match: dict[str, object] = {
        "file1": file1,
        "file2": file2,
        "start1": 2,
        "start1_col": 1,
        "end1": 2,
        "end1_col": 2,
        "start2": 1,
        "start2_col": 1,
        "end2": 1,
        "end2_col": 2,
    }
    match.update(overrides)
    return match


def _pair(id1: str, id2: str, matches: list[dict[str, object]]) -> str:
    return json.dumps(
        {
            "id1": id1,
            "id2": id2,
            "similarities": {"AVG": 0.5, "MAX": 0.75},
            "matches": matches,
        },
    )


def _write_archive(tmp_path: Path, files: dict[str, str | bytes]) -> Path:
    archive_path = tmp_path / "result.zip"
    archive_path.write_bytes(zip_bytes(files))
    return archive_path


def test_decode_reconstructs_offsets_for_both_sides(store: ArtifactStore, tmp_path: Path) -> None:
    _register(store, 17)
    _register(store, 23)
    archive = _write_archive(
        tmp_path,
        {
            "17_main-23_main.json": _pair(
                "17_main",
                "23_main",
                [_match("17_main/17/Program.cs", "23_main/23/Program.cs")],
            ),
        },
    )

    reports = ResultDecoder(store).decode(archive)

    assert len(reports) == 1
    report = reports[0]
    assert (report.work1_id, report.work2_id) == (17, 23)
    assert (report.avg_similarity, report.max_similarity) == (0.5, 0.75)
    match = report.matches[0]
    assert match.work1_file == "17/Program.cs"
    assert match.work2_file == "23/Program.cs"
    assert (match.work1_offset, match.work1_length) == (3, 2)
    assert (match.work2_offset, match.work2_length) == (0, 2)


def test_decode_skips_auxiliary_and_malformed_entries(store: ArtifactStore, tmp_path: Path) -> None:
    _register(store, 1)
    _register(store, 2)
    archive = _write_archive(
        tmp_path,
        {
            "overview.json": "{}",
            "options.json": "{}",
            "README.txt": "engine output",
            "submissionFileIndex.json": "{}",
            "files/1_main/1/Program.cs": SOURCE,
            "broken.json": "{not json",
            "1_main-2_main.json": _pair(
                "1_main",
                "2_main",
                [_match("1_main/1/Program.cs", "2_main/2/Program.cs")],
            ),
        },
    )

    reports = ResultDecoder(store).decode(archive)

    assert [(report.work1_id, report.work2_id) for report in reports] == [(1, 2)]


def test_decode_pair_skips_malformed_match(store: ArtifactStore) -> None:
    _register(store, 1)
    _register(store, 2)
    bad = _match("1_main/1/Program.cs", "2_main/2/Program.cs")
    del bad["start1"]
    good = _match("1_main/1/Program.cs", "2_main/2/Program.cs")

    report = ResultDecoder(store).decode_pair(json.loads(_pair("1_main", "2_main", [bad, good])))

    assert len(report.matches) == 1


def test_decode_pair_unknown_work_leaves_zero_offsets(store: ArtifactStore) -> None:
    _register(store, 1)
    payload = json.loads(
        _pair("1_main", "99_main", [_match("1_main/1/Program.cs", "99_main/99/Program.cs")]),
    )

    report = ResultDecoder(store).decode_pair(payload)

    match = report.matches[0]
    assert (match.work1_offset, match.work1_length) == (3, 2)
    assert (match.work2_offset, match.work2_length) == (0, 0)


def test_decode_pair_missing_file_leaves_zero_offsets(store: ArtifactStore) -> None:
    _register(store, 1)
    _register(store, 2)
    payload = json.loads(
        _pair("1_main", "2_main", [_match("1_main/1/Program.cs", "2_main/2/Missing.cs")]),
    )

    match = ResultDecoder(store).decode_pair(payload).matches[0]

    assert (match.work2_offset, match.work2_length) == (0, 0)


def test_decode_pair_rejects_missing_similarities(store: ArtifactStore) -> None:
    with pytest.raises(DecodeError, match="similarities"):
        ResultDecoder(store).decode_pair({"id1": "1_a", "id2": "2_a"})


def test_decode_unreadable_archive_raises(store: ArtifactStore, tmp_path: Path) -> None:
    garbage = tmp_path / "result.zip"
    garbage.write_bytes(b"definitely not a zip")

    with pytest.raises(DecodeError):
        ResultDecoder(store).decode(garbage)
    with pytest.raises(DecodeError):
        ResultDecoder(store).decode(tmp_path / "missing.zip")


def test_parse_work_id() -> None:
    assert parse_work_id("17_main") == 17
    assert parse_work_id("42") == 42
    with pytest.raises(DecodeError):
        parse_work_id("main_17")


def test_strip_composite_prefix() -> None:
    assert strip_composite_prefix("17_main/17/a/b.cs", "17_main") == "17/a/b.cs"
    with pytest.raises(DecodeError):
        strip_composite_prefix("17_main/", "17_main")


def test_is_auxiliary_entry() -> None:
    assert is_auxiliary_entry(zipfile.ZipInfo("overview.json"))
    assert is_auxiliary_entry(zipfile.ZipInfo("files/1_a/1/x.cs"))
    assert is_auxiliary_entry(zipfile.ZipInfo("nested/"))
    assert not is_auxiliary_entry(zipfile.ZipInfo("1_a-2_a.json"))
