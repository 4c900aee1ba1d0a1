"""Tests for the portfolio capabilities."""

import httpx
import pytest


def github_client(handler, owner="dev", token=None):
    from capabilities.github import GitHubClient
    from shared.config import GitHubSettings

    return GitHubClient(
        GitHubSettings(owner=owner),
        token=token,
        transport=httpx.MockTransport(handler)
    )


REPOS = [
    {"name": "RepoA", "description": "First project", "private": False, "owner": {"login": "dev"}},
    {"name": "RepoB", "description": None, "private": False, "owner": {"login": "Dev"}},
    {"name": "Hidden", "description": "Private", "private": True, "owner": {"login": "dev"}},
    {"name": "Fork", "description": "Someone else", "private": False, "owner": {"login": "other"}},
]


class TestGitHubClient:
    """Tests for the GitHub capabilities."""

    @pytest.mark.asyncio
    async def test_list_repositories(self):
        """Test that only public repositories owned by the owner are listed."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=REPOS)

        async with github_client(handler) as client:
            result = await client.list_repositories()

        assert result == "dev's GitHub Repos:\nRepoA: First project\nRepoB: No description"
        assert requests[0].url.path == "/users/dev/repos"
        assert "Authorization" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_owner_from_authenticated_user(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path == "/user":
                return httpx.Response(200, json={"login": "dev"})
            return httpx.Response(200, json=REPOS[:1])

        async with github_client(handler, owner=None, token="ghp_test") as client:
            result = await client.list_repositories()
            assert await client.owner() == "dev"

        assert result == "dev's GitHub Repos:\nRepoA: First project"
        assert paths == ["/user", "/user/repos"]

    @pytest.mark.asyncio
    async def test_no_repositories(self):
        async with github_client(lambda request: httpx.Response(200, json=[])) as client:
            result = await client.list_repositories()

        assert result == "No public repositories found for dev."

    @pytest.mark.asyncio
    async def test_list_repositories_error(self):
        async with github_client(lambda request: httpx.Response(403)) as client:
            result = await client.list_repositories()

        assert result.startswith("GitHub Error: ")

    @pytest.mark.asyncio
    async def test_no_owner_and_no_token(self):
        async with github_client(lambda request: httpx.Response(200, json=[]), owner=None) as client:
            result = await client.list_repositories()

        assert result.startswith("GitHub Error: ")

    @pytest.mark.asyncio
    async def test_get_readme(self):
        def handler(request):
            assert request.url.path == "/repos/dev/RepoA/readme"
            assert request.headers["Accept"] == "application/vnd.github.raw+json"
            return httpx.Response(200, text="# RepoA\nA sample project.")

        async with github_client(handler) as client:
            result = await client.get_readme("RepoA")

        assert result.startswith("[DATABASE_RESULT_START]\nREPOSITORY: RepoA\n")
        assert "CONTENT: # RepoA\nA sample project.\n[DATABASE_RESULT_END]" in result
        assert result.endswith("INSTRUCTION: Use the content above to answer the user's request.")

    @pytest.mark.asyncio
    async def test_get_readme_not_found(self):
        async with github_client(lambda request: httpx.Response(404)) as client:
            result = await client.get_readme("Missing")

        assert result.startswith("ERROR: Not Found")

    @pytest.mark.asyncio
    async def test_get_recent_commits(self):
        def handler(request):
            assert request.url.params["author"] == "dev"
            assert request.url.params["per_page"] == "2"
            return httpx.Response(200, json=[
                {"commit": {"message": "Add tests", "author": {"date": "2024-05-02T10:00:00Z"}}},
                {"commit": {"message": "Initial commit", "author": {"date": "2024-05-01T09:00:00Z"}}},
            ])

        async with github_client(handler) as client:
            result = await client.get_recent_commits("RepoA", count=2)

        assert result == (
            "Recent activity for RepoA:\n"
            "[2024-05-02] Add tests\n"
            "[2024-05-01] Initial commit"
        )

    @pytest.mark.asyncio
    async def test_get_recent_commits_empty_and_error(self):
        async with github_client(lambda request: httpx.Response(200, json=[])) as client:
            assert await client.get_recent_commits("RepoA") == "No recent commits found for RepoA."

        async with github_client(lambda request: httpx.Response(500)) as client:
            assert (await client.get_recent_commits("RepoA")).startswith("Error: ")

    @pytest.mark.asyncio
    async def test_list_repositories_follows_pagination(self):
        """Test that every page of the listing is fetched."""
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=REPOS[1:2])
            return httpx.Response(
                200,
                json=REPOS[:1],
                headers={"Link": '<https://api.github.com/users/dev/repos?page=2>; rel="next"'}
            )

        async with github_client(handler) as client:
            result = await client.list_repositories()

        assert result == "dev's GitHub Repos:\nRepoA: First project\nRepoB: No description"
        assert len(requests) == 2
        assert requests[1].url.params["page"] == "2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("repo_name", ["../../user/emails?x=", "..", "RepoA/../../user", "a b"])
    async def test_repo_name_cannot_leave_repository_path(self, repo_name):
        """Test that malformed repository names never reach the API."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="private data")

        async with github_client(handler, token="ghp_test") as client:
            readme = await client.get_readme(repo_name)
            commits = await client.get_recent_commits(repo_name)

        assert readme.startswith("ERROR: Invalid repository name")
        assert "[DATABASE_RESULT_START]" not in readme
        assert commits.startswith("Error: Invalid repository name")
        assert requests == []

    @pytest.mark.asyncio
    async def test_commit_without_date(self):
        def handler(request):
            return httpx.Response(200, json=[
                {"commit": {"message": "Add tests", "author": {"date": None}}},
                {"commit": {"message": "Initial commit", "author": None}},
            ])

        async with github_client(handler) as client:
            result = await client.get_recent_commits("RepoA")

        assert result == "Recent activity for RepoA:\n[] Add tests\n[] Initial commit"


class TestLoadGitHubToken:
    """Tests for the credential file."""

    def test_token_is_stripped(self, tmp_path):
        from capabilities.github import load_github_token

        token_file = tmp_path / "github_token"
        token_file.write_text("ghp_abc\n")

        assert load_github_token(token_file) == "ghp_abc"

    def test_missing_or_empty_file(self, tmp_path):
        from capabilities.github import load_github_token

        empty = tmp_path / "empty"
        empty.write_text("  \n")

        assert load_github_token(tmp_path / "missing") is None
        assert load_github_token(empty) is None


class TestSecurityScan:
    """Tests for scan-for-secrets."""

    def test_alert(self):
        from capabilities.security import scan_content

        result = scan_content("settings.py", "API_KEY = 'x'\nPASSWORD: 'y'")

        assert result == (
            "[SECURITY ALERT] Found potential risks in settings.py: "
            "api_key, password. Please review before pushing!"
        )

    def test_clean(self):
        from capabilities.security import scan_content

        assert scan_content("main.py", "print('hi')") == "[CLEAN] No obvious secrets found in main.py."


class TestCodeReview:
    """Tests for review-code-for-tests."""

    def test_suggestions(self):
        from capabilities.testing import analyze_code_for_tests

        result = analyze_code_for_tests("def total(items):\n    for i in items:\n        pass")

        assert result.startswith("### Unit Test Recommendations:\n")
        assert "- Missing Null Checks" in result
        assert "- Collection Edge Cases" in result
        assert "String Inputs" not in result

    def test_null_guard_suppresses_advice(self):
        from capabilities.testing import analyze_code_for_tests

        result = analyze_code_for_tests("def f(x):\n    if x is None:\n        return 0")

        assert "Missing Null Checks" not in result

    def test_clean_review(self):
        from capabilities.testing import CLEAN_REVIEW, analyze_code_for_tests

        assert analyze_code_for_tests("x = 1 + 2") == CLEAN_REVIEW


class TestProjectFileReader:
    """Tests for read-project-file."""

    def _reader(self, root, max_chars=10000):
        from capabilities.files import ProjectFileReader
        from shared.config import FileSettings

        return ProjectFileReader(FileSettings(project_root=str(root), max_chars=max_chars))

    @pytest.mark.asyncio
    async def test_read_file(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("print('hi')\n")

        assert await self._reader(tmp_path).read("src/app.py") == "print('hi')\n"

    @pytest.mark.asyncio
    async def test_truncation(self, tmp_path):
        (tmp_path / "big.txt").write_text("a" * 30)

        result = await self._reader(tmp_path, max_chars=10).read("big.txt")

        assert result == (
            "a" * 10
            + "\n\n[WARNING] File truncated to the first 10 of 30 characters."
        )

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        result = await self._reader(tmp_path).read("nope.txt")

        assert result == "ERROR: File 'nope.txt' not found."

    @pytest.mark.asyncio
    async def test_outside_project_root(self, tmp_path):
        root = tmp_path / "project"
        root.mkdir()
        (tmp_path / "secret.txt").write_text("hidden")

        result = await self._reader(root).read("../secret.txt")

        assert result == "ERROR: '../secret.txt' is outside the project directory."

    @pytest.mark.asyncio
    async def test_binary_file(self, tmp_path):
        (tmp_path / "image.bin").write_bytes(b"\xff\xfe\x00\x81")

        result = await self._reader(tmp_path).read("image.bin")

        assert result == "ERROR: File 'image.bin' is not a text file."


class TestBuildRegistry:
    """Tests for the portfolio registry."""

    def test_all_capabilities_registered(self, tmp_path):
        from capabilities import build_registry
        from shared.config import FileSettings, GitHubSettings, Settings

        settings = Settings(
            github=GitHubSettings(owner="dev"),
            files=FileSettings(project_root=str(tmp_path))
        )

        registry = build_registry(settings)

        assert registry.sealed
        assert registry.names() == [
            "list-repositories",
            "get-readme",
            "get-recent-commits",
            "scan-for-secrets",
            "review-code-for-tests",
            "read-project-file",
        ]
        assert registry.resolve("get-readme").parameter_schema["required"] == ["repoName"]
        assert registry.resolve("get-recent-commits").parameter_schema["required"] == ["repoName"]

    @pytest.mark.asyncio
    async def test_capabilities_dispatch_end_to_end(self, tmp_path):
        from capabilities import build_registry
        from orchestrator.dispatch import ToolDispatcher
        from shared.config import FileSettings, GitHubSettings, Settings
        from conftest import tool_call

        (tmp_path / "notes.md").write_text("hello")

        def handler(request):
            return httpx.Response(200, json=[
                {"commit": {"message": "Fix bug", "author": {"date": "2024-01-03T00:00:00Z"}}},
            ])

        settings = Settings(files=FileSettings(project_root=str(tmp_path)))
        registry = build_registry(
            settings,
            github=github_client(handler)
        )
        dispatcher = ToolDispatcher(registry)

        commits = await dispatcher.dispatch(tool_call("get-recent-commits", repoName="RepoA"))
        scan = await dispatcher.dispatch(
            tool_call("scan-for-secrets", fileName="a.env", content="token=1")
        )
        file = await dispatcher.dispatch(tool_call("read-project-file", fileName="notes.md"))

        assert commits.content == "Recent activity for RepoA:\n[2024-01-03] Fix bug"
        assert scan.content.startswith("[SECURITY ALERT]")
        assert file.content == "hello"

    @pytest.mark.asyncio
    async def test_repository_name_rejected_by_schema(self, tmp_path):
        from capabilities import build_registry
        from orchestrator.dispatch import INVALID_ARGUMENTS_MARKER, ToolDispatcher
        from shared.config import FileSettings, Settings
        from shared.models import ToolResultStatus
        from conftest import tool_call

        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="private data")

        settings = Settings(files=FileSettings(project_root=str(tmp_path)))
        dispatcher = ToolDispatcher(build_registry(settings, github=github_client(handler)))

        result = await dispatcher.dispatch(
            tool_call("get-readme", repoName="../../user/emails?x=")
        )

        assert result.status == ToolResultStatus.VALIDATION_ERROR
        assert result.content.startswith(INVALID_ARGUMENTS_MARKER)
        assert requests == []
