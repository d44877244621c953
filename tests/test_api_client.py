"""Tests for the API client, result sinks and agent event handling."""

from __future__ import annotations

import io
import json
import sys
import urllib.error
import urllib.request
from pathlib import Path

import pytest
import yaml

from relayci.agent.agent import Agent
from relayci.agent.api_client import APIClient, APIError
from relayci.agent.models import ClaimedEvent
from relayci.model import FAILED, PULL_REQUEST, PUSH, SUCCESS, Event, RunResult, StepOutcome
from relayci.sinks import HTTPSink, MultiSink


class FakeResponse:
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self._body = body.encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch):
    """Replace urlopen; `server.replies` is consumed in order, `server.requests` records calls."""

    class Server:
        replies: list = []
        requests: list = []

    def fake_urlopen(req, timeout=None):
        body = json.loads(req.data.decode("utf-8")) if req.data else None
        Server.requests.append((req.get_method(), req.full_url, body))
        reply = Server.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    Server.replies = []
    Server.requests = []
    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return Server


def failed_result() -> RunResult:
    return RunResult(
        workflow="Rust",
        status=FAILED,
        event=Event(PUSH, "main"),
        failed_step=1,
        duration=0.5,
        steps=(StepOutcome(1, "Build", "cargo build", FAILED, exit_status=101, output="error", duration=0.5),),
    )


class TestAPIClient:
    def test_submit_event(self, server) -> None:
        server.replies.append(FakeResponse(201, json.dumps({"event_id": "e-1"})))
        client = APIClient("http://ci.local/")

        event_id = client.submit_event(Event(PULL_REQUEST, "topic", target_branch="main"), repo_url="https://git/x.git")

        assert event_id == "e-1"
        method, url, body = server.requests[0]
        assert (method, url) == ("POST", "http://ci.local/events")
        assert body == {
            "kind": "pull_request",
            "branch": "topic",
            "target_branch": "main",
            "repo_url": "https://git/x.git",
        }

    def test_claim_empty_queue(self, server) -> None:
        server.replies.append(FakeResponse(204))
        assert APIClient("http://ci.local", agent_id="a1").claim_event() is None
        assert server.requests[0][2] == {"agent_id": "a1"}

    def test_claim_event(self, server) -> None:
        server.replies.append(FakeResponse(200, json.dumps({"event_id": "e-2", "kind": "push", "branch": "dev"})))
        claimed = APIClient("http://ci.local").claim_event()
        assert claimed == ClaimedEvent(event_id="e-2", kind="push", branch="dev")
        assert claimed.event == Event(PUSH, "dev")

    def test_malformed_claim(self, server) -> None:
        server.replies.append(FakeResponse(200, json.dumps({"kind": "push"})))
        with pytest.raises(APIError, match="Malformed claim"):
            APIClient("http://ci.local").claim_event()

    def test_report_run(self, server) -> None:
        server.replies.append(FakeResponse(201, json.dumps({"run_id": "r-9"})))
        run_id = APIClient("http://ci.local", agent_id="a1").report_run(failed_result(), event_id="e-1")

        assert run_id == "r-9"
        _method, url, body = server.requests[0]
        assert url == "http://ci.local/runs"
        assert body["agent_id"] == "a1"
        assert body["event_id"] == "e-1"
        assert body["failed_step"] == 1
        assert body["outcome"] == "failed-at-step(1)"
        assert body["steps"][0]["exit_status"] == 101

    def test_http_error(self, server) -> None:
        server.replies.append(
            urllib.error.HTTPError("http://ci.local/runs", 422, "Unprocessable Entity", {}, io.BytesIO(b"bad run"))
        )
        with pytest.raises(APIError) as exc_info:
            APIClient("http://ci.local").report_run(failed_result())
        assert exc_info.value.status == 422
        assert "bad run" in str(exc_info.value)

    def test_network_error(self, server) -> None:
        server.replies.append(urllib.error.URLError("connection refused"))
        with pytest.raises(APIError, match="Network error"):
            APIClient("http://ci.local").claim_event()

    def test_invalid_json(self, server) -> None:
        server.replies.append(FakeResponse(200, "not json"))
        with pytest.raises(APIError, match="Invalid JSON"):
            APIClient("http://ci.local").claim_event()


class RecordingClient:
    base_url = "http://ci.local"
    agent_id = "test-agent"

    def __init__(self):
        self.reports: list = []

    def report_run(self, result: RunResult, event_id: str | None = None) -> str:
        self.reports.append((result, event_id))
        return f"run-{len(self.reports)}"


class TestSinks:
    def test_http_sink_keeps_run_id(self) -> None:
        client = RecordingClient()
        sink = HTTPSink(client, event_id="e-1")
        sink(failed_result())
        assert sink.run_id == "run-1"
        assert client.reports[0][1] == "e-1"

    def test_multi_sink_order(self) -> None:
        seen = []
        MultiSink([lambda r: seen.append("a"), lambda r: seen.append("b")])(failed_result())
        assert seen == ["a", "b"]


class TestAgentHandle:
    @pytest.fixture
    def workflow_file(self, tmp_path: Path) -> Path:
        doc = {
            "name": "agent-demo",
            "on": {"push": {"branches": ["main"]}},
            "jobs": {"build": {"steps": [{"name": "hello", "run": f'"{sys.executable}" -c "print(1)"'}]}},
        }
        path = tmp_path / "ci.yml"
        path.write_text(yaml.safe_dump(doc), encoding="utf-8")
        return path

    def test_runs_and_reports(self, workflow_file: Path) -> None:
        agent = Agent("http://ci.local", "a1", workflow_file)
        client = RecordingClient()
        agent.api_client = client

        result = agent.handle(ClaimedEvent(event_id="e-1", kind="push", branch="main"))

        assert result is not None and result.status == SUCCESS
        assert client.reports == [(result, "e-1")]

    def test_not_triggered_reports_nothing(self, workflow_file: Path, capsys: pytest.CaptureFixture) -> None:
        agent = Agent("http://ci.local", "a1", workflow_file)
        client = RecordingClient()
        agent.api_client = client

        assert agent.handle(ClaimedEvent(event_id="e-2", kind="push", branch="dev")) is None
        assert client.reports == []
        assert "Event e-2 did not trigger agent-demo" in capsys.readouterr().out

    def test_missing_workflow_is_reported_not_raised(self, tmp_path: Path) -> None:
        agent = Agent("http://ci.local", "a1", tmp_path / "missing.yml")
        agent.api_client = RecordingClient()
        assert agent.handle(ClaimedEvent(event_id="e-3", kind="push", branch="main")) is None

    def test_signal_stops_loop_and_cancels(self, tmp_path: Path) -> None:
        agent = Agent("http://ci.local", "a1", tmp_path / "ci.yml")
        agent._signal_handler(15, None)
        assert not agent.running
        assert agent.cancel.is_set()
