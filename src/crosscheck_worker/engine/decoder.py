"""Decoder for the engine's result archive.

The archive holds one JSON document per compared pair next to auxiliary
files (overview, options, submission index, copies of the sources). A pair
document looks like::

    {
      "id1": "17_main", "id2": "23_main",
      "similarities": {"AVG": 0.41, "MAX": 0.56},
      "matches": [
        {"file1": "17_main/17/Program.cs", "file2": "23_main/23/Program.cs",
         "start1": 3, "start1_col": 1, "end1": 9, "end1_col": 2,
         "start2": 5, "start2_col": 5, "end2": 11, "end2_col": 6}
      ]
    }

Composite ids are ``<work_id>_<suffix>``. File names carry the composite id
plus one separator character in front of the path relative to the work
directory registered in the store.
"""

from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from crosscheck_worker.engine.positions import ONE_BASED, locate
from crosscheck_worker.errors import DecodeError, StoreInconsistencyError
from crosscheck_worker.models import LineSpan, MatchItem, ReportItem
from crosscheck_worker.storage.ledger import ArtifactStore

logger = logging.getLogger(__name__)

SKIPPED_PREFIXES = ("files",)
SKIPPED_NAMES = frozenset(
    {
        "options.json",
        "overview.json",
        "README.txt",
        "submissionFileIndex.json",
    },
)


@dataclass(slots=True, frozen=True)
class _MatchSide:
    relative_file: str
    span: LineSpan


class ResultDecoder:
    """Turns an engine result archive into pair reports with absolute offsets."""

    def __init__(self, store: ArtifactStore, *, first_line_columns: str = ONE_BASED) -> None:
        self.store = store
        self.first_line_columns = first_line_columns

    def decode(self, archive_path: Path) -> list[ReportItem]:
        """Decode every pair document; raises DecodeError only for an unreadable archive."""

        try:
            archive = zipfile.ZipFile(archive_path)
        except (OSError, zipfile.BadZipFile) as error:
            raise DecodeError(f"Cannot open result archive {archive_path}: {error}") from error

        reports: list[ReportItem] = []
        with archive:
            for info in archive.infolist():
                if is_auxiliary_entry(info):
                    continue
                try:
                    payload = _read_json(archive, info)
                    report = self.decode_pair(payload)
                except DecodeError as error:
                    logger.error("Skipping archive entry %s: %s", info.filename, error)
                    continue
                reports.append(report)
        logger.info("Decoded %d pair reports from %s", len(reports), archive_path)
        return reports

    def decode_pair(self, payload: dict[str, Any]) -> ReportItem:
        """Decode one pair document; malformed matches are skipped."""

        composite1 = _require_str(payload, "id1")
        composite2 = _require_str(payload, "id2")
        similarities = payload.get("similarities")
        if not isinstance(similarities, dict):
            raise DecodeError("'similarities' must be an object")

        report = ReportItem(
            work1_id=parse_work_id(composite1),
            work2_id=parse_work_id(composite2),
            avg_similarity=_require_number(similarities, "AVG"),
            max_similarity=_require_number(similarities, "MAX"),
        )

        raw_matches = payload.get("matches") or []
        if not isinstance(raw_matches, list):
            raise DecodeError("'matches' must be an array")

        work1_root = self._work_root(report.work1_id)
        work2_root = self._work_root(report.work2_id)
        for index, raw_match in enumerate(raw_matches):
            try:
                side1 = _match_side(raw_match, composite1, side=1)
                side2 = _match_side(raw_match, composite2, side=2)
            except DecodeError as error:
                logger.warning(
                    "Skipping match %d of pair %s/%s: %s",
                    index,
                    composite1,
                    composite2,
                    error,
                )
                continue

            match = MatchItem(work1_file=side1.relative_file, work2_file=side2.relative_file)
            match.work1_offset, match.work1_length = self._locate(work1_root, side1)
            match.work2_offset, match.work2_length = self._locate(work2_root, side2)
            report.matches.append(match)
        return report

    def _work_root(self, work_id: int) -> Path | None:
        try:
            entry = self.store.get(work_id)
        except StoreInconsistencyError as error:
            logger.error("%s", error)
            return None
        if entry is None:
            logger.error("Work %s from the result archive is not in the store", work_id)
            return None
        return entry.path

    def _locate(self, work_root: Path | None, side: _MatchSide) -> tuple[int, int]:
        if work_root is None:
            return 0, 0
        path = work_root / side.relative_file
        try:
            return locate(path, side.span, first_line_columns=self.first_line_columns)
        except OSError as error:
            logger.error("Cannot read %s to locate match: %s", path, error)
            return 0, 0


def is_auxiliary_entry(info: zipfile.ZipInfo) -> bool:
    """True for archive entries that carry no pair report."""

    if info.is_dir():
        return True
    name = info.filename
    return name in SKIPPED_NAMES or name.startswith(SKIPPED_PREFIXES)


def parse_work_id(composite_id: str) -> int:
    """Numeric work id in front of the first ``_`` of a composite id."""

    head = composite_id.split("_", 1)[0]
    if not head.isdigit():
        raise DecodeError(f"Cannot parse work id from {composite_id!r}")
    return int(head)


def strip_composite_prefix(file_name: str, composite_id: str) -> str:
    """Drop the ``<composite id><separator>`` prefix from an engine file name."""

    skip = len(composite_id) + 1
    if len(file_name) <= skip:
        raise DecodeError(f"File name {file_name!r} is too short for id {composite_id!r}")
    if not file_name.startswith(composite_id):
        logger.debug("File name %r does not start with id %r", file_name, composite_id)
    return file_name[skip:]


def _read_json(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> dict[str, Any]:
    try:
        data = archive.read(info)
    except (OSError, zipfile.BadZipFile, RuntimeError) as error:
        raise DecodeError(f"cannot read entry: {error}") from error
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise DecodeError(f"invalid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise DecodeError("expected a JSON object")
    return payload


def _match_side(raw_match: object, composite_id: str, *, side: int) -> _MatchSide:
    if not isinstance(raw_match, dict):
        raise DecodeError("match must be an object")
    file_name = _require_str(raw_match, f"file{side}")
    span = LineSpan(
        start_line=_require_position(raw_match, f"start{side}"),
        start_col=_require_position(raw_match, f"start{side}_col"),
        end_line=_require_position(raw_match, f"end{side}"),
        end_col=_require_position(raw_match, f"end{side}_col"),
    )
    return _MatchSide(relative_file=strip_composite_prefix(file_name, composite_id), span=span)


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"'{key}' must be a non-empty string")
    return value


def _require_number(payload: dict[str, Any], key: str) -> float:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise DecodeError(f"'{key}' must be a number")
    return float(value)


def _require_position(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeError(f"'{key}' must be a non-negative integer")
    return value
