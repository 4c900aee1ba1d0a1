"""Orchestrator.

Drives the conversation turn loop: keeps conversation state, offers the
tool manifest to the model gateway, dispatches tool calls and guards the
final answer.
"""

from orchestrator.conversation import ConversationIntegrityError, ConversationState
from orchestrator.dispatch import ToolDispatcher
from orchestrator.engine import Orchestrator
from orchestrator.llm import (
    GatewayFailure,
    MockModelGateway,
    ModelGateway,
    create_model_gateway,
)
from orchestrator.policy import LeakageDetector, LoopGuard, LoopGuardExceeded, TurnPolicy
from orchestrator.registry import (
    DuplicateCapabilityError,
    RegistrySealedError,
    ToolCapability,
    ToolRegistry,
)

__all__ = [
    "ConversationIntegrityError",
    "ConversationState",
    "DuplicateCapabilityError",
    "GatewayFailure",
    "LeakageDetector",
    "LoopGuard",
    "LoopGuardExceeded",
    "MockModelGateway",
    "ModelGateway",
    "Orchestrator",
    "RegistrySealedError",
    "ToolCapability",
    "ToolDispatcher",
    "ToolRegistry",
    "TurnPolicy",
    "create_model_gateway",
]
