"""Start-up wiring shared by the console prompt and the HTTP app."""

from dataclasses import dataclass

from shared.config import Settings
from shared.logging import get_logger
from capabilities import build_registry
from capabilities.files import ProjectFileReader
from capabilities.github import GitHubClient, load_github_token
from orchestrator.audit import AuditLogger
from orchestrator.dispatch import ToolDispatcher
from orchestrator.llm import ModelGateway, create_model_gateway
from orchestrator.registry import ToolRegistry

logger = get_logger(__name__)


@dataclass
class Components:
    """Process-wide collaborators, shared by every session."""
    settings: Settings
    gateway: ModelGateway
    registry: ToolRegistry
    dispatcher: ToolDispatcher
    audit_logger: AuditLogger
    github: GitHubClient

    async def close(self) -> None:
        await self.audit_logger.flush()
        await self.github.close()
        await self.gateway.aclose()


def build_components(settings: Settings) -> Components:
    """
    Build the gateway, the sealed registry and the dispatcher.

    The GitHub credential file is read exactly once, here.
    """
    token = load_github_token(settings.github.token_file)
    github = GitHubClient(settings.github, token=token)
    registry = build_registry(settings, github, ProjectFileReader(settings.files))

    audit_logger = AuditLogger(
        log_path=settings.orchestrator.audit_log_path,
        enabled=settings.orchestrator.audit_enabled
    )
    dispatcher = ToolDispatcher(
        registry,
        audit_logger=audit_logger,
        timeout_seconds=settings.orchestrator.tool_timeout_seconds
    )

    gateway = create_model_gateway(settings.llm)

    logger.info(
        "Components ready",
        provider=settings.llm.provider,
        model=settings.llm.model,
        tools=registry.names()
    )

    return Components(
        settings=settings,
        gateway=gateway,
        registry=registry,
        dispatcher=dispatcher,
        audit_logger=audit_logger,
        github=github
    )
