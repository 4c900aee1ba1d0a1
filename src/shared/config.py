"""Configuration management for the Portfolio Agent.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TRIGGER_PHRASES = [
    "hi",
    "hello",
    "hey",
    "good morning",
    "good afternoon",
    "good evening",
    "bye",
    "goodbye",
    "see you",
    "thanks",
    "thank you",
    "thx",
    "cheers",
]

DEFAULT_LEAK_PLACEHOLDERS = ["{}", "[]", "{ }", "[ ]", "null", "none", "\"\""]

DEFAULT_LEAK_MARKERS = ["[DATABASE_RESULT_START]", "[DATABASE_RESULT_END]", "<tool_call>"]

DEFAULT_NO_RESPONSE_TEXT = "I'm not sure how to answer that. Could you rephrase?"

DEFAULT_LOOP_GUARD_TEXT = "I wasn't able to finish that request. Please try again."

DEFAULT_GATEWAY_FAILURE_TEXT = "Sorry, I couldn't reach the language model. Please try again."

DEFAULT_SYSTEM_PROMPT = """You are Flux, a portfolio assistant for a software developer.

You can use tools to list the developer's public repositories, read README files,
look at recent commits, scan content for secrets, suggest unit tests for code,
and read local project files.

Guidelines:
- Only call a tool when the user asks about the portfolio, code, or files
- Use exact repository names as returned by the repository listing
- If a tool returns an error, explain the issue to the user
- Never make up information - use tools to get accurate data
- Answer in plain prose, never with raw JSON
"""


class LLMSettings(BaseSettings):
    """Model backend configuration."""
    provider: str = Field(default="ollama", description="Model provider: ollama, openai, mock")
    model: str = Field(default="llama3.2", description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: Optional[str] = Field(default="http://localhost:11434", description="API base URL")
    temperature: float = Field(default=0.2, ge=0, le=2)
    request_timeout: float = Field(default=120.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore"
    )


class OrchestratorSettings(BaseSettings):
    """Turn loop and HTTP surface configuration."""
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Turn loop
    max_rounds: int = Field(default=3, ge=1, description="Gateway calls allowed per user turn")
    trigger_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_TRIGGER_PHRASES))
    leak_placeholders: list[str] = Field(default_factory=lambda: list(DEFAULT_LEAK_PLACEHOLDERS))
    leak_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_LEAK_MARKERS))
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)
    tool_timeout_seconds: Optional[float] = Field(default=60.0, gt=0)

    # Fallback texts
    no_response_text: str = Field(default=DEFAULT_NO_RESPONSE_TEXT)
    loop_guard_text: str = Field(default=DEFAULT_LOOP_GUARD_TEXT)
    gateway_failure_text: str = Field(default=DEFAULT_GATEWAY_FAILURE_TEXT)

    # Sessions
    session_ttl_minutes: int = Field(default=60)

    # Audit
    audit_enabled: bool = Field(default=True)
    audit_log_path: str = Field(default="logs/audit.log")

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore"
    )


class GitHubSettings(BaseSettings):
    """GitHub REST API configuration."""
    api_url: str = Field(default="https://api.github.com")
    owner: Optional[str] = Field(default=None, description="Portfolio owner login")
    token_file: str = Field(default="secrets/github_token")
    timeout: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="GITHUB_",
        env_file=".env",
        extra="ignore"
    )


class FileSettings(BaseSettings):
    """Local project file access."""
    project_root: str = Field(default=".")
    max_chars: int = Field(default=10000, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="FILES_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    files: FileSettings = Field(default_factory=FileSettings)

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Settings from a YAML file; environment variables fill the gaps."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Parsed YAML mapping, or an empty dict when the file does not exist."""
    path = Path(path)
    if not path.is_file():
        return {}

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def save_yaml_config(data: dict[str, Any], path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


@lru_cache
def get_settings() -> Settings:
    """
    Process-wide settings, loaded once.

    The YAML path comes from ``PORTFOLIO_CONFIG_PATH`` and defaults to
    ``config/settings.yaml``.
    """
    return Settings.from_yaml(os.environ.get("PORTFOLIO_CONFIG_PATH", "config/settings.yaml"))
