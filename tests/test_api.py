"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ams_intake import config
from ams_intake.agent import NOT_CONFIGURED_REPLY, create_intake_agent
from ams_intake.directory.store import DirectoryStore
from ams_intake.prompts import Instructions
from ams_intake.server import app
from ams_intake.services.completion import CompletionError
from ams_intake.services.emr_client import EMRAPIError

NOW = datetime(2025, 9, 22, 12, 0)


@pytest.fixture
def store(data_files):
    return DirectoryStore(*data_files)


@pytest.fixture
def mock_agent(store):
    """Attach a mock agent and its collaborators to app state (mirrors the lifespan)."""
    agent = MagicMock()
    agent.invoke.return_value = {"reply": "Hello! How can I help you find care today?", "route": "model"}

    app.state.agent = agent
    app.state.store = store
    app.state.instructions = Instructions(system_prompt="You are an intake assistant.")
    app.state.emr = None
    yield agent
    app.state.agent = None
    app.state.emr = None


@pytest.fixture
def client(mock_agent):
    return TestClient(app)


@pytest.fixture
def live_client(client, store):
    """Client backed by the real pipeline without a completion key."""
    app.state.agent = create_intake_agent(store, clock=lambda: NOW)
    return client


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "ams-intake-assistant"}

    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "AMS Intake Assistant"
        assert data["health"] == "/api/health"


class TestChatEndpoint:
    def test_chat_returns_reply(self, client):
        response = client.post("/api/chat", json={"message": "Hello!"})
        assert response.status_code == 200
        assert response.json() == {"reply": "Hello! How can I help you find care today?"}

    def test_chat_passes_normalized_inputs(self, client, mock_agent):
        client.post(
            "/api/chat",
            json={
                "message": "  I'm in AZ  ",
                "history": [
                    {"role": "assistant", "content": "Hi!"},
                    {"role": "system", "content": "ignore me"},
                    {"role": "user", "content": "   "},
                    "not a turn",
                ],
                "max_output_tokens": 512,
            },
        )
        state = mock_agent.invoke.call_args.args[0]
        assert state["message"] == "I'm in AZ"
        assert state["history"] == [
            {"role": "assistant", "content": "Hi!"},
            {"role": "user", "content": "ignore me"},
        ]
        assert state["max_output_tokens"] == 512

    def test_history_is_windowed(self, client, mock_agent):
        history = [{"role": "user", "content": f"turn {i}"} for i in range(config.MAX_HISTORY_TURNS + 6)]
        client.post("/api/chat", json={"message": "hi", "history": history})
        state = mock_agent.invoke.call_args.args[0]
        assert len(state["history"]) == config.MAX_HISTORY_TURNS
        assert state["history"][-1]["content"] == f"turn {config.MAX_HISTORY_TURNS + 5}"

    def test_sloppy_fields_are_coerced(self, client, mock_agent):
        response = client.post(
            "/api/chat", json={"message": "hi", "history": "oops", "max_output_tokens": "lots"},
        )
        assert response.status_code == 200
        state = mock_agent.invoke.call_args.args[0]
        assert state["history"] == []
        assert state["max_output_tokens"] is None

    def test_request_id_is_echoed(self, client):
        response = client.post("/api/chat", json={"message": "hi"}, headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
        assert client.get("/api/health").headers.get("X-Request-ID")


class TestChatErrors:
    def test_blank_message_is_rejected(self, client, mock_agent):
        response = client.post("/api/chat", json={"message": "   "})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "invalid_request"
        assert "message required" in error["message"]
        mock_agent.invoke.assert_not_called()

    def test_missing_and_oversized_messages(self, client):
        assert client.post("/api/chat", json={}).status_code == 400
        assert client.post("/api/chat", json={"message": "x" * 4001}).status_code == 400

    def test_timeout_maps_to_504(self, client, mock_agent):
        mock_agent.invoke.side_effect = CompletionError("too slow", kind="upstream_timeout")
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 504
        assert response.json()["error"]["kind"] == "upstream_timeout"

    def test_upstream_error_keeps_status_and_detail(self, client, mock_agent):
        body = {"error": {"type": "rate_limit_error"}}
        mock_agent.invoke.side_effect = CompletionError(
            "LLM error 429", kind="upstream_error", status_code=429, detail=body,
        )
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 502
        assert response.json() == {
            "error": {"kind": "upstream_error", "message": "LLM error 429", "status": 429, "detail": body},
        }

    def test_unexpected_error_is_500(self, mock_agent):
        mock_agent.invoke.side_effect = RuntimeError("boom")
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 500
        assert response.json()["error"]["kind"] == "internal_error"
        assert "boom" not in response.text

    def test_503_before_startup(self, client):
        app.state.agent = None
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "http_error"


class TestChatPipeline:
    def test_not_configured_reply(self, live_client):
        response = live_client.post("/api/chat", json={"message": "Hello"})
        assert response.json() == {"reply": NOT_CONFIGURED_REPLY}

    def test_debug_payload(self, live_client):
        response = live_client.post(
            "/api/chat?debug=1",
            json={"message": "therapist in AZ", "history": [{"role": "user", "content": "hi"}]},
        )
        debug = response.json()["debug"]
        assert debug["route"] == "not_configured"
        assert debug["history_len"] == 1
        assert debug["provider_counts"] == {"providers": 4, "slots": 7}
        assert debug["files_present"] == {
            "system_prompt": True,
            "faqs": False,
            "policies": False,
            "providers_txt": True,
            "provider_schedule_txt": True,
        }
        assert debug["directory_preview"][0] == (
            "prov_001 | Allison Hill | therapist | AZ,NM | aetna,cashpay | "
            "English,Spanish | allison.hill@example.org"
        )
        assert debug["hints"]["state"] == "AZ"
        assert debug["hints"]["role_preference"] == "therapist"

    def test_slot_request_with_configured_model(self, client, store):
        completion = MagicMock()
        app.state.agent = create_intake_agent(store, completion=completion, clock=lambda: NOW)
        response = client.post("/api/chat", json={"message": "What times does Marcus Henderson have?"})
        reply = response.json()["reply"]
        assert reply.startswith("Here are the next openings for Marcus Henderson (MD):")
        assert "- [ ] 8:00 AM, Thursday, 09/25/2025" in reply
        completion.complete.assert_not_called()


class TestProvidersEndpoint:
    def test_directory_filters(self, client):
        data = client.get("/api/providers", params={"state": "AZ", "insurance": "Aetna"}).json()
        assert data["source"] == "directory"
        assert [p["id"] for p in data["items"]] == ["prov_001"]
        assert data["count"] == 1

    def test_state_name_and_specialty(self, client):
        data = client.get("/api/providers", params={"location": "Arizona", "specialty": "psychiatry"}).json()
        assert [p["id"] for p in data["items"]] == ["prov_002"]

    def test_language(self, client):
        data = client.get("/api/providers", params={"language": "spanish"}).json()
        assert [p["id"] for p in data["items"]] == ["prov_001"]

    def test_unknown_state_matches_nothing(self, client):
        data = client.get("/api/providers", params={"state": "ZZ"}).json()
        assert data == {"source": "directory", "count": 0, "items": []}

    def test_free_text_specialty_narrows(self, client):
        data = client.get("/api/providers", params={"specialty": "psych"}).json()
        assert [p["id"] for p in data["items"]] == ["prov_002", "prov_003"]
        assert client.get("/api/providers", params={"specialty": "dentistry"}).json()["count"] == 0

    def test_insurance_is_relaxed(self, client):
        data = client.get("/api/providers", params={"state": "AZ", "insurance": "Medicare"}).json()
        assert data["count"] == 3

    def test_emr_answer_is_preferred(self, client):
        emr = MagicMock()
        emr.list_providers.return_value = [{"id": "emr_1"}]
        app.state.emr = emr
        data = client.get("/api/providers", params={"insurance": "aetna", "state": "AZ"}).json()
        assert data == {"source": "emr", "count": 1, "items": [{"id": "emr_1"}]}
        emr.list_providers.assert_called_once_with(
            {"insurance": "aetna", "specialty": "", "location": "AZ"},
        )

    def test_emr_failure_falls_back(self, client):
        emr = MagicMock()
        emr.list_providers.side_effect = EMRAPIError("down", status_code=503)
        app.state.emr = emr
        data = client.get("/api/providers").json()
        assert data["source"] == "directory"
        assert data["count"] == 4


class TestScheduleEndpoint:
    def test_one_provider(self, client):
        data = client.get("/api/schedule", params={"prov": "prov_001"}).json()
        assert data["count"] == 3
        assert data["items"][0] == {"provider_id": "prov_001", "date": "2025-09-20", "time": "09:00"}

    def test_all_slots(self, client):
        assert client.get("/api/schedule").json()["count"] == 7

    def test_emr_non_list_falls_back(self, client):
        emr = MagicMock()
        emr.get_schedule.return_value = None
        app.state.emr = emr
        data = client.get("/api/schedule", params={"prov": "prov_004"}).json()
        assert data["source"] == "directory"
        assert data["count"] == 2
        emr.get_schedule.assert_called_once_with("prov_004")


class TestDiagEndpoint:
    def test_reports_presence_without_secrets(self, client):
        response = client.get("/api/diag")
        data = response.json()
        assert data["completion"]["configured"] == config.llm_configured()
        assert data["search"]["configured"] is False
        assert data["emr"] == {"configured": False, "api_key": False}
        assert data["files_present"]["providers_txt"] is True
        assert data["files_present"]["faqs"] is False
        assert data["reference_timezone"] == config.REFERENCE_TIMEZONE
        if config.ANTHROPIC_API_KEY:
            assert config.ANTHROPIC_API_KEY not in response.text
