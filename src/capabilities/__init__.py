"""Portfolio capabilities.

The six tools the model may call, and construction of the sealed
registry that advertises them.
"""

from typing import Any, Optional

from shared.config import Settings
from shared.logging import get_logger
from shared.schema import create_tool_schema
from orchestrator.registry import ToolCapability, ToolRegistry
from capabilities.files import ProjectFileReader
from capabilities.github import REPO_NAME_PATTERN, GitHubClient
from capabilities.security import scan_content
from capabilities.testing import analyze_code_for_tests

logger = get_logger(__name__)


REPO_NAME_PARAMETER = {
    "name": "repoName",
    "type": "string",
    "description": "Exact repository name as returned by list-repositories",
    "pattern": f"^{REPO_NAME_PATTERN.pattern}$",
}


def portfolio_capabilities(
    github: GitHubClient,
    reader: ProjectFileReader
) -> list[ToolCapability]:
    """Build the portfolio tool set around the given backends."""

    async def list_repositories(arguments: dict[str, Any]) -> str:
        return await github.list_repositories()

    async def get_readme(arguments: dict[str, Any]) -> str:
        return await github.get_readme(arguments["repoName"])

    async def get_recent_commits(arguments: dict[str, Any]) -> str:
        return await github.get_recent_commits(
            arguments["repoName"],
            arguments.get("count", 5)
        )

    def scan_for_secrets(arguments: dict[str, Any]) -> str:
        return scan_content(arguments["fileName"], arguments["content"])

    def review_code_for_tests(arguments: dict[str, Any]) -> str:
        return analyze_code_for_tests(arguments["codeSnippet"])

    async def read_project_file(arguments: dict[str, Any]) -> str:
        return await reader.read(arguments["fileName"])

    return [
        ToolCapability(
            name="list-repositories",
            description="List the developer's public GitHub repositories with their descriptions.",
            parameter_schema=create_tool_schema([]),
            invoke=list_repositories,
        ),
        ToolCapability(
            name="get-readme",
            description=(
                "Get the README of one of the developer's repositories. "
                "Use the exact repository name from list-repositories."
            ),
            parameter_schema=create_tool_schema([
                REPO_NAME_PARAMETER,
            ]),
            invoke=get_readme,
        ),
        ToolCapability(
            name="get-recent-commits",
            description="Get the developer's most recent commit messages in a repository.",
            parameter_schema=create_tool_schema([
                REPO_NAME_PARAMETER,
                {
                    "name": "count",
                    "type": "integer",
                    "description": "Number of commits to return",
                    "default": 5,
                    "minimum": 1,
                    "maximum": 100,
                },
            ]),
            invoke=get_recent_commits,
        ),
        ToolCapability(
            name="scan-for-secrets",
            description="Scan file content for API keys, passwords, tokens and other secrets before pushing.",
            parameter_schema=create_tool_schema([
                {"name": "fileName", "type": "string", "description": "Name of the file being scanned"},
                {"name": "content", "type": "string", "description": "File content to scan"},
            ]),
            invoke=scan_for_secrets,
        ),
        ToolCapability(
            name="review-code-for-tests",
            description="Review a code snippet and suggest unit tests that should be written for it.",
            parameter_schema=create_tool_schema([
                {"name": "codeSnippet", "type": "string", "description": "Source code to review"},
            ]),
            invoke=review_code_for_tests,
        ),
        ToolCapability(
            name="read-project-file",
            description="Read a text file from the local project directory.",
            parameter_schema=create_tool_schema([
                {"name": "fileName", "type": "string", "description": "Path relative to the project root"},
            ]),
            invoke=read_project_file,
        ),
    ]


def build_registry(
    settings: Settings,
    github: Optional[GitHubClient] = None,
    reader: Optional[ProjectFileReader] = None
) -> ToolRegistry:
    """
    Register all portfolio capabilities and seal the registry.

    Args:
        settings: Application settings
        github: GitHub client (built from settings if omitted)
        reader: Project file reader (built from settings if omitted)

    Returns:
        Sealed tool registry
    """
    registry = ToolRegistry()
    registry.register_many(portfolio_capabilities(
        github or GitHubClient(settings.github),
        reader or ProjectFileReader(settings.files)
    ))
    registry.seal()

    logger.info("Portfolio capabilities registered", tool_count=len(registry))
    return registry


__all__ = [
    "GitHubClient",
    "ProjectFileReader",
    "analyze_code_for_tests",
    "build_registry",
    "portfolio_capabilities",
    "scan_content",
]
