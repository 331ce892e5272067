"""Artifact ledger: index records and extracted trees managed as one unit."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from crosscheck_worker.errors import ArtifactConflictError, StoreInconsistencyError
from crosscheck_worker.models import WorkEntry
from crosscheck_worker.storage.alembic_runner import upgrade_head
from crosscheck_worker.storage.common import (
    build_sqlite_engine,
    from_db_datetime,
    to_db_datetime,
)
from crosscheck_worker.storage.fs import directory_size, remove_tree
from crosscheck_worker.storage.sqlmodel_models import WorkEntryRecord

logger = logging.getLogger(__name__)

DB_FILENAME = "data.db"
WORKS_DIRNAME = "works"


@dataclass(slots=True)
class SweepResult:
    """Outcome of reconciling the index with the ``works/`` directory."""

    orphans_removed: list[Path] = field(default_factory=list)
    ghosts_dropped: list[int] = field(default_factory=list)
    failures: list[Path] = field(default_factory=list)


class ArtifactStore:
    """Cache ledger backed by SQLModel + SQLite and the ``works/`` tree.

    Every call commits immediately. Removal always drops the record before
    the directory, so an interrupted eviction leaves at worst an orphan
    directory, which :meth:`sweep` reclaims.
    """

    def __init__(self, root: Path, *, busy_timeout_ms: int = 5_000) -> None:
        root.mkdir(parents=True, exist_ok=True)
        self.root = root.resolve()
        self.works_dir = self.root / WORKS_DIRNAME
        self.db_path = self.root / DB_FILENAME
        self.engine = build_sqlite_engine(db_path=self.db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations and make sure the works directory exists."""

        upgrade_head(self.db_path)
        self.works_dir.mkdir(parents=True, exist_ok=True)

    def work_path(self, work_id: int) -> Path:
        return self.works_dir / str(work_id)

    def extraction_path(self, work_id: int) -> Path:
        """Directory the submission archive is unpacked into."""

        return self.work_path(work_id) / str(work_id)

    def get(self, work_id: int) -> WorkEntry | None:
        """Return the cached entry, or None when the work is not stored."""

        with Session(self.engine) as session:
            row = session.exec(
                select(WorkEntryRecord).where(WorkEntryRecord.work_id == work_id),
            ).one_or_none()
            if row is None:
                return None
            entry = _to_entry(row)
        if not entry.path.is_dir():
            raise StoreInconsistencyError(work_id, str(entry.path))
        return entry

    def save(self, work_id: int, path: Path, timestamp: datetime) -> WorkEntry:
        """Register an extracted tree; raises ArtifactConflictError on duplicates."""

        with Session(self.engine) as session:
            row = WorkEntryRecord(
                work_id=work_id,
                path=str(path),
                last_access_at=to_db_datetime(timestamp),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ArtifactConflictError(work_id) from error
            session.refresh(row)
            return _to_entry(row)

    def touch(self, work_ids: Iterable[int], timestamp: datetime) -> None:
        """Bump last access time of the given works; unknown ids are ignored."""

        ids = list(dict.fromkeys(work_ids))
        if not ids:
            return
        with Session(self.engine) as session:
            session.exec(
                sa_update(WorkEntryRecord)
                .where(col(WorkEntryRecord.work_id).in_(ids))
                .values(last_access_at=to_db_datetime(timestamp)),
            )
            session.commit()

    def oldest(self, limit: int) -> list[WorkEntry]:
        """Up to ``limit`` least recently accessed entries, oldest first."""

        if limit <= 0:
            return []
        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkEntryRecord)
                .order_by(
                    col(WorkEntryRecord.last_access_at).asc(),
                    col(WorkEntryRecord.record_id).asc(),
                )
                .limit(limit),
            ).all()
            return [_to_entry(row) for row in rows]

    def delete(self, work_ids: Iterable[int]) -> None:
        """Drop index records; unknown ids are ignored."""

        ids = list(dict.fromkeys(work_ids))
        if not ids:
            return
        with Session(self.engine) as session:
            session.exec(
                sa_delete(WorkEntryRecord).where(col(WorkEntryRecord.work_id).in_(ids)),
            )
            session.commit()

    def entries(self) -> list[WorkEntry]:
        """All entries, oldest first, without checking their directories."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkEntryRecord).order_by(
                    col(WorkEntryRecord.last_access_at).asc(),
                    col(WorkEntryRecord.record_id).asc(),
                ),
            ).all()
            return [_to_entry(row) for row in rows]

    def count(self) -> int:
        with Session(self.engine) as session:
            return int(session.exec(select(func.count()).select_from(WorkEntryRecord)).one())

    def evict(self, entry: WorkEntry) -> int:
        """Remove one cached work, record first; return the bytes reclaimed."""

        try:
            size = directory_size(entry.path)
        except OSError as error:
            logger.warning("Cannot measure work %s at %s: %s", entry.work_id, entry.path, error)
            size = 0

        self.delete([entry.work_id])
        try:
            remove_tree(entry.path)
        except OSError as error:
            logger.error(
                "Failed to remove tree of evicted work %s (%s), leaving orphan: %s",
                entry.work_id,
                entry.path,
                error,
            )
            return 0
        logger.debug("Evicted work %s (%d bytes)", entry.work_id, size)
        return size

    def sweep(self) -> SweepResult:
        """Remove orphan directories and drop records whose tree is gone."""

        result = SweepResult()
        indexed = {entry.work_id: entry for entry in self.entries()}

        for entry in indexed.values():
            if entry.path.is_dir():
                continue
            logger.warning(
                "Dropping index record of work %s: %s is missing",
                entry.work_id,
                entry.path,
            )
            result.ghosts_dropped.append(entry.work_id)
        self.delete(result.ghosts_dropped)

        if not self.works_dir.is_dir():
            return result
        for child in sorted(self.works_dir.iterdir()):
            if not child.is_dir():
                continue
            work_id = _parse_work_dirname(child.name)
            if work_id is not None and work_id in indexed:
                continue
            try:
                remove_tree(child)
            except OSError as error:
                logger.error("Failed to remove orphan directory %s: %s", child, error)
                result.failures.append(child)
                continue
            logger.info("Removed orphan directory %s", child)
            result.orphans_removed.append(child)
        return result


def _parse_work_dirname(name: str) -> int | None:
    if not name.isdigit():
        return None
    return int(name)


def _to_entry(row: WorkEntryRecord) -> WorkEntry:
    return WorkEntry(
        work_id=row.work_id,
        path=Path(row.path),
        last_access_at=from_db_datetime(row.last_access_at),
    )
