"""Core data models for the Portfolio Agent.

This module defines the shared data structures used across the agent:
dialogue messages, tool call requests and results, the tool manifest
advertised to the model, and per-turn outcomes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class Role(str, Enum):
    """Role of a message in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """
    One invocation demand emitted by the model.

    The correlation id is produced by the model gateway and pairs the call
    with its eventual ToolResult message.
    """
    correlation_id: str = Field(..., description="Identifier unique within the conversation")
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    argument_error: Optional[str] = Field(
        default=None,
        description="Set when the raw arguments could not be decoded"
    )


class Message(BaseModel):
    """A single message in a conversation."""
    role: Role
    text: Optional[str] = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    tool_result_for: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def _check_payload(self) -> "Message":
        if self.tool_calls and self.role != Role.ASSISTANT:
            raise ValueError("Only assistant messages may carry tool calls")
        if self.role == Role.TOOL and not self.tool_result_for:
            raise ValueError("Tool messages must reference a correlation id")
        if self.tool_result_for and self.role != Role.TOOL:
            raise ValueError("Only tool messages may reference a correlation id")
        return self

    @property
    def requests_tools(self) -> bool:
        return bool(self.tool_calls)


class ToolManifestEntry(BaseModel):
    """A tool as advertised to the model."""
    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    def to_llm_format(self) -> dict[str, Any]:
        """Return the OpenAI function-calling definition for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {
                    "type": "object",
                    "properties": {},
                    "required": []
                }
            }
        }


class TurnKind(str, Enum):
    """What a model turn asks the orchestrator to do."""
    TEXT = "text"
    TOOL_CALLS = "tool_calls"


class ModelTurn(BaseModel):
    """One assistant turn returned by the model gateway."""
    text: Optional[str] = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)

    @property
    def kind(self) -> TurnKind:
        return TurnKind.TOOL_CALLS if self.tool_calls else TurnKind.TEXT


class ToolResultStatus(str, Enum):
    """Status of a tool dispatch."""
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    TIMEOUT = "timeout"


class ToolResult(BaseModel):
    """
    Result of a tool dispatch.

    Failures are encoded as text in ``content`` because the content is
    routed back into the conversation as an ordinary tool result.
    """
    tool_name: str
    correlation_id: str
    status: ToolResultStatus
    content: str
    execution_time_ms: float = 0


class TurnState(str, Enum):
    """Orchestrator state machine positions."""
    AWAITING_USER_INPUT = "awaiting_user_input"
    THINKING = "thinking"
    TOOL_DISPATCH = "tool_dispatch"
    PRESENTING = "presenting"


class TurnStatus(str, Enum):
    """How a user turn ended."""
    COMPLETED = "completed"
    LOOP_GUARD_EXCEEDED = "loop_guard_exceeded"
    GATEWAY_FAILED = "gateway_failed"


class TurnResult(BaseModel):
    """Outcome of one user turn, surfaced to the caller."""
    text: str
    status: TurnStatus = TurnStatus.COMPLETED
    rounds: int = 0
    tool_suppressed: bool = False
    leakage_detected: bool = False
    request_id: str


class AuditEntry(BaseModel):
    """
    Audit log entry for tool dispatches.

    Captures session, tool, arguments, timestamp, and result.
    """
    id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    session_id: Optional[str] = None
    tool_name: str
    correlation_id: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    status: ToolResultStatus
    execution_time_ms: float = 0
