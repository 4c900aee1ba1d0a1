"""Shared models, configuration and logging for the Portfolio Agent."""

from shared.models import (
    Message,
    ModelTurn,
    Role,
    ToolCallRequest,
    ToolManifestEntry,
    ToolResult,
    ToolResultStatus,
    TurnResult,
    TurnState,
    TurnStatus,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "Message",
    "ModelTurn",
    "Role",
    "ToolCallRequest",
    "ToolManifestEntry",
    "ToolResult",
    "ToolResultStatus",
    "TurnResult",
    "TurnState",
    "TurnStatus",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
