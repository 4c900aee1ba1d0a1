"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from conftest import calls_turn, text_turn, tool_call


@pytest.fixture
def gateway():
    from orchestrator.llm import MockModelGateway

    return MockModelGateway()


@pytest.fixture
def client(registry, gateway):
    from capabilities.github import GitHubClient
    from orchestrator.audit import AuditLogger
    from orchestrator.bootstrap import Components
    from orchestrator.dispatch import ToolDispatcher
    from orchestrator.main import create_app
    from shared.config import LLMSettings, OrchestratorSettings, Settings

    settings = Settings(
        llm=LLMSettings(provider="mock"),
        orchestrator=OrchestratorSettings(audit_enabled=False)
    )
    components = Components(
        settings=settings,
        gateway=gateway,
        registry=registry,
        dispatcher=ToolDispatcher(registry),
        audit_logger=AuditLogger(enabled=False),
        github=GitHubClient(settings.github)
    )

    with TestClient(create_app(components=components)) as test_client:
        yield test_client


class TestAPI:
    """Tests for the FastAPI application."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "provider": "mock",
            "tool_count": 2,
            "session_count": 0,
        }

    def test_tools(self, client):
        data = client.get("/tools").json()

        assert data["count"] == 2
        assert [tool["name"] for tool in data["tools"]] == ["list-repositories", "get-readme"]

    def test_chat_creates_session(self, client, gateway):
        gateway.queue(
            calls_turn(tool_call("list-repositories")),
            text_turn("You have one repository: RepoA."),
        )

        response = client.post("/chat", json={"message": "show me your repos"})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "You have one repository: RepoA."
        assert data["status"] == "completed"
        assert data["rounds"] == 2
        assert data["tool_suppressed"] is False

        history = client.get(f"/sessions/{data['session_id']}").json()["messages"]
        assert [m["role"] for m in history] == ["system", "user", "assistant", "tool", "assistant"]
        assert history[3]["text"] == "RepoA: desc"

    def test_sessions_are_independent(self, client, gateway):
        gateway.queue(text_turn("Hi there!"), text_turn("Hello again!"), text_turn("Welcome!"))

        first = client.post("/chat", json={"message": "hello"}).json()
        again = client.post(
            "/chat",
            json={"message": "hello", "session_id": first["session_id"]}
        ).json()
        other = client.post("/chat", json={"message": "hey"}).json()

        assert again["session_id"] == first["session_id"]
        assert other["session_id"] != first["session_id"]
        assert first["tool_suppressed"] is True

        sessions = {s["id"]: s for s in client.get("/sessions").json()["sessions"]}
        assert sessions[first["session_id"]]["message_count"] == 5
        assert sessions[other["session_id"]]["message_count"] == 3

    def test_gateway_failure_status(self, client, gateway):
        gateway.queue(RuntimeError("backend down"))

        data = client.post("/chat", json={"message": "show me your repos"}).json()

        assert data["status"] == "gateway_failed"

    def test_empty_message_rejected(self, client):
        response = client.post("/chat", json={"message": ""})

        assert response.status_code == 422

    def test_delete_session(self, client):
        session_id = client.post("/chat", json={"message": "hi"}).json()["session_id"]

        assert client.delete(f"/sessions/{session_id}").status_code == 200
        assert client.get(f"/sessions/{session_id}").status_code == 404
        assert client.delete(f"/sessions/{session_id}").status_code == 404


class TestSessionManager:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_expired_session_is_replaced(self, registry):
        from datetime import timedelta
        from orchestrator.llm import MockModelGateway
        from orchestrator.sessions import SessionManager
        from shared.config import OrchestratorSettings

        manager = SessionManager(OrchestratorSettings(), gateway=MockModelGateway(), registry=registry)
        session = await manager.create()
        session.updated_at -= manager.ttl + timedelta(seconds=1)

        assert await manager.get(session.id) is None
        replacement = await manager.get_or_create(session.id)
        assert replacement.id != session.id

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, registry):
        from datetime import timedelta
        from orchestrator.llm import MockModelGateway
        from orchestrator.sessions import SessionManager
        from shared.config import OrchestratorSettings

        manager = SessionManager(OrchestratorSettings(), gateway=MockModelGateway(), registry=registry)
        stale = await manager.create()
        await manager.create()
        stale.updated_at -= manager.ttl + timedelta(seconds=1)

        assert await manager.cleanup_expired() == 1
        assert manager.get_stats()["total_sessions"] == 1


class TestConsole:
    """Tests for the console prompt loop."""

    @pytest.mark.asyncio
    async def test_blank_line_ends_session(self, registry):
        from orchestrator.cli import run_console
        from orchestrator.engine import Orchestrator
        from orchestrator.llm import MockModelGateway

        gateway = MockModelGateway(responses=[text_turn("Hi! How can I help?")])
        orchestrator = Orchestrator(gateway=gateway, registry=registry)
        lines = iter(["hey", "   "])
        output = []

        turns = await run_console(orchestrator, read_line=lambda prompt: next(lines), write=output.append)

        assert turns == 1
        assert output[-1] == "\nAgent: Hi! How can I help?"

    @pytest.mark.asyncio
    async def test_end_of_input(self, registry):
        from orchestrator.cli import run_console
        from orchestrator.engine import Orchestrator
        from orchestrator.llm import MockModelGateway

        def read_line(prompt):
            raise EOFError

        orchestrator = Orchestrator(gateway=MockModelGateway(), registry=registry)

        assert await run_console(orchestrator, read_line=read_line, write=lambda text: None) == 0


class TestSettings:
    """Tests for configuration loading."""

    def test_from_yaml(self, tmp_path):
        from shared.config import Settings, save_yaml_config

        path = tmp_path / "settings.yaml"
        save_yaml_config({
            "llm": {"provider": "mock"},
            "orchestrator": {"max_rounds": 5, "trigger_phrases": ["howdy"]},
            "github": {"owner": "dev"},
        }, path)

        settings = Settings.from_yaml(path)

        assert settings.llm.provider == "mock"
        assert settings.orchestrator.max_rounds == 5
        assert settings.orchestrator.trigger_phrases == ["howdy"]
        assert settings.github.owner == "dev"
        assert settings.files.max_chars == 10000

    def test_missing_file_uses_defaults(self, tmp_path):
        from shared.config import Settings

        settings = Settings.from_yaml(tmp_path / "missing.yaml")

        assert settings.orchestrator.max_rounds == 3
        assert "hello" in settings.orchestrator.trigger_phrases


class TestBootstrap:
    """Tests for start-up wiring."""

    @pytest.mark.asyncio
    async def test_build_components(self, tmp_path):
        from unittest.mock import AsyncMock
        from orchestrator.bootstrap import build_components
        from orchestrator.llm import MockModelGateway
        from shared.config import (
            GitHubSettings,
            LLMSettings,
            OrchestratorSettings,
            Settings,
        )

        token_file = tmp_path / "github_token"
        token_file.write_text("ghp_abc\n")
        settings = Settings(
            llm=LLMSettings(provider="mock"),
            orchestrator=OrchestratorSettings(audit_log_path=str(tmp_path / "logs" / "audit.log")),
            github=GitHubSettings(owner="dev", token_file=str(token_file))
        )

        components = build_components(settings)

        assert isinstance(components.gateway, MockModelGateway)
        assert components.github._token == "ghp_abc"
        assert len(components.registry) == 6
        assert components.dispatcher.audit_logger is components.audit_logger

        components.github.close = AsyncMock()
        await components.close()
        components.github.close.assert_awaited_once()
