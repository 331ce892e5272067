"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import FakeOrchestrator

from crosscheck_worker.storage.ledger import ArtifactStore


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[ArtifactStore]:
    artifact_store = ArtifactStore(tmp_path / "storage")
    artifact_store.init_schema()
    try:
        yield artifact_store
    finally:
        artifact_store.close()


@pytest.fixture()
def orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()
