"""Error taxonomy of the worker pipeline.

Failures scoped to one submission, match or archive entry are logged and
swallowed where they occur. Failures scoped to a whole batch propagate up to
the worker, which always acknowledges the batch as closed with error.
"""

from __future__ import annotations


class CrossCheckError(RuntimeError):
    """Base class for worker pipeline errors."""


class TransientRPCError(CrossCheckError):
    """Orchestrator call failed; the next polling tick retries naturally."""

    def __init__(self, call: str, message: str) -> None:
        super().__init__(f"{call}: {message}")
        self.call = call


class NotAvailableError(CrossCheckError):
    """One submission could not be downloaded or extracted."""

    def __init__(self, work_id: int, reason: str) -> None:
        super().__init__(f"work {work_id} is not available: {reason}")
        self.work_id = work_id
        self.reason = reason


class DecodeError(CrossCheckError):
    """Engine result archive (or one of its entries) could not be decoded."""


class EngineInvocationError(CrossCheckError):
    """External engine could not be started or exited with failure."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class QuotaEnforcementError(CrossCheckError):
    """Store size could not be measured or reclaimed."""


class ArtifactConflictError(CrossCheckError):
    """Work id is already registered in the artifact store."""

    def __init__(self, work_id: int) -> None:
        super().__init__(f"work {work_id} is already stored")
        self.work_id = work_id


class StoreInconsistencyError(CrossCheckError):
    """Index record exists but its extracted tree is missing."""

    def __init__(self, work_id: int, path: str) -> None:
        super().__init__(f"work {work_id} is indexed but its directory is missing: {path}")
        self.work_id = work_id
        self.path = path
