"""JSON-over-HTTP transport for the orchestrator call set."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from crosscheck_worker.errors import TransientRPCError
from crosscheck_worker.models import ReportItem, Task

logger = logging.getLogger(__name__)

AUTH_HEADER = "authorization"


class HttpOrchestratorClient:
    """Orchestrator client posting JSON documents to ``<base_url>/<call>``.

    Every request carries the worker key in the ``authorization`` header.
    """

    def __init__(
        self,
        *,
        base_url: str,
        auth_key: str = "",
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {AUTH_HEADER: auth_key} if auth_key else {}
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )

    def poll_tasks(self) -> list[Task]:
        payload = self._call("tasks/poll", {})
        raw_tasks = payload.get("tasks") or []
        if not isinstance(raw_tasks, list):
            raise TransientRPCError("tasks/poll", "'tasks' must be an array")
        try:
            return [
                Task(
                    task_id=int(item["id"]),
                    group_id=int(item["group_id"]),
                    work_id=int(item["work_id"]),
                )
                for item in raw_tasks
            ]
        except (KeyError, TypeError, ValueError) as error:
            raise TransientRPCError("tasks/poll", f"malformed task: {error!r}") from error

    def list_group_submissions(self, group_id: int) -> list[int]:
        payload = self._call("groups/submissions", {"group_id": group_id})
        raw_ids = payload.get("work_ids") or []
        if not isinstance(raw_ids, list):
            raise TransientRPCError("groups/submissions", "'work_ids' must be an array")
        try:
            return [int(value) for value in raw_ids]
        except (TypeError, ValueError) as error:
            raise TransientRPCError("groups/submissions", f"malformed work id: {error}") from error

    def resolve_download_links(self, work_ids: Sequence[int]) -> dict[int, str]:
        payload = self._call("works/download-links", {"work_ids": list(work_ids)})
        raw_items = payload.get("items") or []
        if not isinstance(raw_items, list):
            raise TransientRPCError("works/download-links", "'items' must be an array")

        links: dict[int, str] = {}
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            link = item.get("download_link")
            try:
                work_id = int(item.get("work_id"))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                logger.warning("Skipping download link with malformed work id: %r", item)
                continue
            if not isinstance(link, str) or not link.strip():
                continue
            links[work_id] = link.strip()
        return links

    def submit_report(self, report: ReportItem) -> None:
        self._call("reports", report.to_payload())

    def close_tasks(self, task_ids: Sequence[int], *, succeeded: bool) -> None:
        self._call("tasks/close", {"task_ids": list(task_ids), "succeeded": succeeded})

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpOrchestratorClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _call(self, call: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(call, json=body)
        except httpx.HTTPError as error:
            raise TransientRPCError(call, str(error)) from error
        if not response.is_success:
            raise TransientRPCError(call, f"HTTP {response.status_code}")
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as error:
            raise TransientRPCError(call, f"invalid JSON response: {error}") from error
        if not isinstance(payload, dict):
            raise TransientRPCError(call, "expected a JSON object")
        return payload
