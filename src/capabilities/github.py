"""GitHub capabilities: repositories, READMEs and recent commits.

Talks to the GitHub REST API with httpx. Every public method returns the
text handed back to the model; API failures are reported as text too.
"""

import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import GitHubSettings
from shared.logging import get_logger

logger = get_logger(__name__)


README_INSTRUCTION = "Use the content above to answer the user's request."

# GitHub repository names: letters, digits, ".", "-" and "_"
REPO_NAME_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

# Upper bound on pages fetched for one listing
MAX_PAGES = 10


class GitHubError(Exception):
    """GitHub API request failed."""


def load_github_token(token_file: str | Path) -> Optional[str]:
    """
    Read the GitHub token from the credential file.

    Args:
        token_file: Path to a file holding the token

    Returns:
        The token, or None if the file is missing or empty
    """
    path = Path(token_file).expanduser()
    if not path.is_file():
        logger.warning("GitHub token file not found, running unauthenticated", path=str(path))
        return None

    token = path.read_text(encoding="utf-8").strip()
    if not token:
        logger.warning("GitHub token file is empty, running unauthenticated", path=str(path))
        return None

    logger.info("GitHub token loaded", path=str(path))
    return token


class GitHubClient:
    """
    Read-only GitHub client for the portfolio owner's public work.

    The owner is taken from configuration or, when unset, from the
    authenticated user.
    """

    def __init__(
        self,
        settings: Optional[GitHubSettings] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize GitHub client.

        Args:
            settings: API URL, owner and timeout
            token: Personal access token, if any
            transport: Optional httpx transport (used by tests)
        """
        self.settings = settings or GitHubSettings()
        self._token = token
        self._owner = self.settings.owner
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "Flux-Portfolio-Agent",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_url.rstrip("/"),
                timeout=self.settings.timeout,
                headers=self._get_headers(),
                transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    async def _get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        accept: Optional[str] = None
    ) -> httpx.Response:
        client = await self._get_client()
        headers = {"Accept": accept} if accept else None
        response = await client.get(path, params=params, headers=headers)

        if response.status_code == 404:
            raise GitHubError(f"Not Found ({path})")
        if response.status_code in (401, 403):
            raise GitHubError(f"Access denied ({response.status_code})")

        response.raise_for_status()
        return response

    async def owner(self) -> str:
        """Portfolio owner login."""
        if self._owner:
            return self._owner

        if not self._token:
            raise GitHubError("No owner configured and no token to look one up")

        response = await self._get("/user")
        self._owner = response.json()["login"]
        return self._owner

    async def _get_all(self, path: str, params: dict[str, Any]) -> list[Any]:
        """Every item of a paginated listing, following ``Link: rel="next"``."""
        items: list[Any] = []
        next_url: Optional[str] = path
        pages = 0

        while next_url and pages < MAX_PAGES:
            response = await self._get(next_url, params=params if pages == 0 else None)
            items.extend(response.json())
            next_url = response.links.get("next", {}).get("url")
            pages += 1

        if next_url:
            logger.warning("Listing truncated", path=path, max_pages=MAX_PAGES)

        return items

    async def list_repositories(self) -> str:
        """Public repositories owned by the portfolio owner."""
        try:
            owner = await self.owner()
            if self._token:
                repos = await self._get_all(
                    "/user/repos",
                    {"per_page": 100, "affiliation": "owner", "sort": "updated"}
                )
            else:
                repos = await self._get_all(
                    f"/users/{quote(owner, safe='')}/repos",
                    {"per_page": 100, "type": "owner", "sort": "updated"}
                )

            lines = [
                f"{repo['name']}: {repo.get('description') or 'No description'}"
                for repo in repos
                if not repo.get("private")
                and repo.get("owner", {}).get("login", "").lower() == owner.lower()
            ]
        except (GitHubError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("Repository listing failed", error=str(e))
            return f"GitHub Error: {e}"

        if not lines:
            return f"No public repositories found for {owner}."

        return f"{owner}'s GitHub Repos:\n" + "\n".join(lines)

    async def _repo_path(self, repo_name: str) -> str:
        """API path of one of the owner's repositories."""
        if not REPO_NAME_PATTERN.fullmatch(repo_name) or repo_name in (".", ".."):
            raise GitHubError(f"Invalid repository name '{repo_name}'")

        owner = await self.owner()
        return f"/repos/{quote(owner, safe='')}/{quote(repo_name, safe='')}"

    async def get_readme(self, repo_name: str) -> str:
        """README of a repository, wrapped in result markers."""
        try:
            response = await self._get(
                f"{await self._repo_path(repo_name)}/readme",
                accept="application/vnd.github.raw+json"
            )
            content = response.text
        except (GitHubError, httpx.HTTPError) as e:
            logger.warning("README retrieval failed", repo=repo_name, error=str(e))
            return f"ERROR: {e}"

        logger.info("README retrieved", repo=repo_name, length=len(content))

        return (
            "[DATABASE_RESULT_START]\n"
            f"REPOSITORY: {repo_name}\n"
            "FILE: README.md\n"
            f"CONTENT: {content}\n"
            "[DATABASE_RESULT_END]\n"
            f"INSTRUCTION: {README_INSTRUCTION}"
        )

    async def get_recent_commits(self, repo_name: str, count: int = 5) -> str:
        """Most recent commits by the owner, newest first."""
        try:
            path = await self._repo_path(repo_name)
            response = await self._get(
                f"{path}/commits",
                params={"author": await self.owner(), "per_page": count, "page": 1}
            )

            lines = []
            for item in response.json()[:count]:
                commit = item["commit"]
                date = ((commit.get("author") or {}).get("date") or "")[:10]
                lines.append(f"[{date}] {commit['message']}")
        except (GitHubError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("Commit retrieval failed", repo=repo_name, error=str(e))
            return f"Error: {e}"

        if not lines:
            return f"No recent commits found for {repo_name}."

        return f"Recent activity for {repo_name}:\n" + "\n".join(lines)
