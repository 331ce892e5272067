"""Orchestrator RPC boundary."""

from crosscheck_worker.rpc.base import OrchestratorClient
from crosscheck_worker.rpc.http_client import HttpOrchestratorClient

__all__ = [
    "HttpOrchestratorClient",
    "OrchestratorClient",
]
