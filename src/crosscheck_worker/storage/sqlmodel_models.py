"""SQLModel ORM tables for the artifact index."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel


class WorkEntryRecord(SQLModel, table=True):
    __tablename__ = "work_entries"  # type: ignore[bad-override]
    __table_args__ = (
        Index("ix_work_entries_last_access", "last_access_at", "record_id"),
    )

    # Autoincrement id doubles as insertion order for LRU tie-breaking.
    record_id: int | None = Field(default=None, primary_key=True)
    work_id: int = Field(unique=True, index=True)
    path: str
    last_access_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
