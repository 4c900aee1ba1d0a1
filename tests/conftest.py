"""Shared fixtures for orchestrator tests."""

import itertools

import pytest

from shared.models import ModelTurn, ToolCallRequest


_ids = itertools.count(1)


def tool_call(name: str, correlation_id: str | None = None, **arguments) -> ToolCallRequest:
    """Build a tool call request with a fresh correlation id by default."""
    return ToolCallRequest(
        correlation_id=correlation_id or f"call_{next(_ids)}",
        tool_name=name,
        arguments=arguments
    )


def calls_turn(*calls: ToolCallRequest, text: str | None = None) -> ModelTurn:
    return ModelTurn(text=text, tool_calls=list(calls))


def text_turn(text: str | None) -> ModelTurn:
    return ModelTurn(text=text)


@pytest.fixture
def invocations() -> list[tuple[str, dict]]:
    """Every tool invocation made through the ``registry`` fixture."""
    return []


@pytest.fixture
def registry(invocations):
    """Sealed registry with a fake repository listing and README tool."""
    from orchestrator.registry import ToolCapability, ToolRegistry

    def list_repositories(arguments):
        invocations.append(("list-repositories", arguments))
        return "RepoA: desc"

    async def get_readme(arguments):
        invocations.append(("get-readme", arguments))
        return f"README of {arguments['repoName']}"

    registry = ToolRegistry()
    registry.register(ToolCapability(
        name="list-repositories",
        description="List repositories",
        invoke=list_repositories
    ))
    registry.register(ToolCapability(
        name="get-readme",
        description="Get a README",
        parameter_schema={
            "type": "object",
            "properties": {"repoName": {"type": "string"}},
            "required": ["repoName"]
        },
        invoke=get_readme
    ))
    registry.seal()
    return registry
