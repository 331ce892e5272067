"""Local artifact storage: index database, extracted trees and quota."""

from crosscheck_worker.storage.ledger import ArtifactStore, SweepResult
from crosscheck_worker.storage.quota import QuotaCheckResult, QuotaEnforcer

__all__ = [
    "ArtifactStore",
    "QuotaCheckResult",
    "QuotaEnforcer",
    "SweepResult",
]
