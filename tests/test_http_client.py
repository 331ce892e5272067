from __future__ import annotations

import json

import allure
import httpx
import pytest

from crosscheck_worker.errors import TransientRPCError
from crosscheck_worker.http.fetcher import HttpFetcher
from crosscheck_worker.models import MatchItem, ReportItem, Task
from crosscheck_worker.rpc.http_client import HttpOrchestratorClient

pytestmark = [
    allure.epic("Orchestrator"),
    allure.feature("HTTP Transport"),
]

BASE_URL = "https://orchestrator.example.com/api/v1"


class _Recorder:
    def __init__(self, responses: dict[str, httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        call = request.url.path.removeprefix("/api/v1/")
        return self.responses.get(call, httpx.Response(200, json={}))

    def body(self, index: int = -1) -> dict[str, object]:
        return json.loads(self.requests[index].content)


def _client(recorder: _Recorder, *, auth_key: str = "secret") -> HttpOrchestratorClient:
    return HttpOrchestratorClient(
        base_url=BASE_URL,
        auth_key=auth_key,
        transport=httpx.MockTransport(recorder),
    )


def test_poll_tasks_parses_tasks_and_sends_auth_header() -> None:
    recorder = _Recorder(
        {
            "tasks/poll": httpx.Response(
                200,
                json={"tasks": [{"id": 1, "group_id": 3, "work_id": 5}]},
            ),
        },
    )

    tasks = _client(recorder).poll_tasks()

    assert tasks == [Task(task_id=1, group_id=3, work_id=5)]
    assert recorder.requests[0].headers["authorization"] == "secret"
    assert recorder.requests[0].method == "POST"


def test_poll_tasks_without_work_returns_empty() -> None:
    assert _client(_Recorder({})).poll_tasks() == []


def test_list_group_submissions() -> None:
    recorder = _Recorder({"groups/submissions": httpx.Response(200, json={"work_ids": [5, 7, 9]})})

    assert _client(recorder).list_group_submissions(3) == [5, 7, 9]
    assert recorder.body() == {"group_id": 3}


def test_resolve_download_links_omits_missing_links() -> None:
    recorder = _Recorder(
        {
            "works/download-links": httpx.Response(
                200,
                json={
                    "items": [
                        {"work_id": 9, "download_link": ""},
                        {"work_id": 11, "download_link": "https://files/11.zip"},
                        {"work_id": "bad", "download_link": "https://files/x.zip"},
                    ],
                },
            ),
        },
    )

    links = _client(recorder).resolve_download_links([9, 11])

    assert links == {11: "https://files/11.zip"}
    assert recorder.body() == {"work_ids": [9, 11]}


def test_submit_report_and_close_tasks_payloads() -> None:
    recorder = _Recorder({})
    client = _client(recorder)
    report = ReportItem(
        work1_id=1,
        work2_id=2,
        avg_similarity=0.5,
        max_similarity=0.9,
        matches=[MatchItem(work1_file="1/a.cs", work2_file="2/a.cs", work1_offset=3)],
    )

    client.submit_report(report)
    client.close_tasks([10, 11], succeeded=False)

    assert recorder.body(0)["work1_id"] == 1
    assert recorder.body(0)["matches"][0]["work1_offset"] == 3
    assert recorder.body(1) == {"task_ids": [10, 11], "succeeded": False}


def test_non_success_status_raises_transient_error() -> None:
    recorder = _Recorder({"tasks/poll": httpx.Response(503)})

    with pytest.raises(TransientRPCError, match="HTTP 503"):
        _client(recorder).poll_tasks()


def test_transport_error_raises_transient_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = HttpOrchestratorClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))

    with pytest.raises(TransientRPCError, match="tasks/close"):
        client.close_tasks([1], succeeded=True)


def test_malformed_task_raises_transient_error() -> None:
    recorder = _Recorder({"tasks/poll": httpx.Response(200, json={"tasks": [{"id": 1}]})})

    with pytest.raises(TransientRPCError, match="malformed"):
        _client(recorder).poll_tasks()


def test_no_auth_header_without_key() -> None:
    recorder = _Recorder({})

    _client(recorder, auth_key="").poll_tasks()

    assert "authorization" not in recorder.requests[0].headers


def test_fetcher_reports_redirect_as_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"location": "https://elsewhere/x.zip"})

    with HttpFetcher(transport=httpx.MockTransport(handler)) as fetcher:
        result = fetcher.download("https://files.example.com/x.zip")

    assert not result.is_success
    assert result.status_code == 302
    assert result.content == b""


def test_fetcher_reports_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with HttpFetcher(transport=httpx.MockTransport(handler)) as fetcher:
        result = fetcher.download("https://files.example.com/x.zip")

    assert not result.is_success
    assert result.error == "timeout"
