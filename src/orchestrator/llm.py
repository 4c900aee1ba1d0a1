"""Model gateway: the boundary between the orchestrator and the LLM.

Supports chat models via LlamaIndex-compatible packages:
- Ollama (default, local)
- OpenAI
- A scripted mock for tests and offline runs

The gateway has no side effects. It turns a conversation snapshot and a
tool manifest into one typed ModelTurn; every tool execution happens in
the orchestrator.
"""

import json
import uuid
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from shared.config import LLMSettings
from shared.logging import get_logger
from shared.models import Message, ModelTurn, Role, ToolCallRequest, ToolManifestEntry

logger = get_logger(__name__)


class GatewayFailure(Exception):
    """The model backend was unreachable or returned an unusable response."""


def new_correlation_id() -> str:
    return f"call_{uuid.uuid4().hex[:16]}"


class ModelGateway(ABC):
    """
    Abstract base class for model gateways.

    Gateway rules:
    - receives a history snapshot and the manifest for this round
    - returns either prose, tool calls, or both, as a ModelTurn
    - an empty manifest means the model must not be offered any tools
    - failures are raised as GatewayFailure
    """

    @abstractmethod
    async def complete(
        self,
        history: Sequence[Message],
        tools: Sequence[ToolManifestEntry]
    ) -> ModelTurn:
        """
        Produce one assistant turn.

        Args:
            history: Conversation snapshot, oldest first
            tools: Tools the model may call this round (possibly empty)

        Returns:
            The assistant turn

        Raises:
            GatewayFailure: If the backend fails
        """

    async def aclose(self) -> None:
        """Release backend resources."""


class LlamaIndexGateway(ModelGateway):
    """Chat-model gateway using LlamaIndex LLM integrations."""

    def __init__(self, settings: LLMSettings, llm: Any = None) -> None:
        self.settings = settings
        self._llm = llm

    def _get_llm(self):
        """Lazy initialization of the LlamaIndex LLM."""
        if self._llm is None:
            if self.settings.provider == "openai":
                from llama_index.llms.openai import OpenAI

                self._llm = OpenAI(
                    model=self.settings.model,
                    api_key=self.settings.api_key,
                    api_base=self.settings.api_base,
                    temperature=self.settings.temperature,
                    timeout=self.settings.request_timeout,
                )
            else:
                from llama_index.llms.ollama import Ollama

                self._llm = Ollama(
                    model=self.settings.model,
                    base_url=self.settings.api_base or "http://localhost:11434",
                    temperature=self.settings.temperature,
                    request_timeout=self.settings.request_timeout,
                )
        return self._llm

    @property
    def _string_arguments(self) -> bool:
        # OpenAI encodes call arguments as JSON strings, Ollama as objects
        return self.settings.provider == "openai"

    def _convert_messages(self, messages: Sequence[Message]) -> list:
        """Convert conversation messages to LlamaIndex chat messages."""
        from llama_index.core.llms import ChatMessage, MessageRole

        role_map = {
            Role.USER: MessageRole.USER,
            Role.ASSISTANT: MessageRole.ASSISTANT,
            Role.SYSTEM: MessageRole.SYSTEM,
            Role.TOOL: MessageRole.TOOL,
        }

        result = []
        for msg in messages:
            additional_kwargs: dict[str, Any] = {}
            if msg.tool_calls:
                additional_kwargs["tool_calls"] = [
                    self._encode_call(call) for call in msg.tool_calls
                ]
            if msg.tool_result_for:
                additional_kwargs["tool_call_id"] = msg.tool_result_for

            result.append(ChatMessage(
                role=role_map[msg.role],
                content=msg.text or "",
                additional_kwargs=additional_kwargs,
            ))

        return result

    def _encode_call(self, call: ToolCallRequest) -> dict[str, Any]:
        arguments: Any = call.arguments
        if self._string_arguments:
            arguments = json.dumps(call.arguments)
        return {
            "id": call.correlation_id,
            "type": "function",
            "function": {"name": call.tool_name, "arguments": arguments},
        }

    async def complete(
        self,
        history: Sequence[Message],
        tools: Sequence[ToolManifestEntry]
    ) -> ModelTurn:
        """Generate one assistant turn through LlamaIndex."""
        try:
            llm = self._get_llm()
            chat_messages = self._convert_messages(history)

            if tools:
                response = await llm.achat(
                    chat_messages,
                    tools=[tool.to_llm_format() for tool in tools]
                )
            else:
                response = await llm.achat(chat_messages)
        except Exception as e:
            logger.error(
                "Model completion failed",
                provider=self.settings.provider,
                model=self.settings.model,
                error=str(e)
            )
            raise GatewayFailure(f"Model backend failed: {e}") from e

        message = getattr(response, "message", None)
        if message is None:
            raise GatewayFailure("Model backend returned no message")

        # Without a manifest the model was offered no tools
        tool_calls = self._extract_calls(llm, response) if tools else []

        return ModelTurn(text=message.content, tool_calls=tool_calls)

    def _extract_calls(self, llm: Any, response: Any) -> list[ToolCallRequest]:
        """
        Tool calls of a chat response.

        Function-calling integrations expose their calls through
        ``get_tool_calls_from_response`` (Ollama keeps them in message
        blocks, OpenAI in ``additional_kwargs``). Responses the integration
        cannot parse, and integrations without that method, are read from
        ``additional_kwargs`` directly.
        """
        get_tool_calls = getattr(llm, "get_tool_calls_from_response", None)
        if get_tool_calls is not None:
            try:
                selections = get_tool_calls(response, error_on_no_tool_call=False)
            except (ValueError, TypeError, KeyError) as e:
                logger.warning(
                    "Integration could not parse tool calls, reading raw calls",
                    provider=self.settings.provider,
                    error=str(e)
                )
            else:
                if selections:
                    return [self._from_selection(selection) for selection in selections]

        raw_calls = response.message.additional_kwargs.get("tool_calls") or []
        return [self._parse_call(raw) for raw in raw_calls]

    @staticmethod
    def _from_selection(selection: Any) -> ToolCallRequest:
        """Convert a LlamaIndex ``ToolSelection``."""
        arguments = selection.tool_kwargs
        return ToolCallRequest(
            correlation_id=selection.tool_id or new_correlation_id(),
            tool_name=selection.tool_name or "",
            arguments=dict(arguments) if isinstance(arguments, dict) else {},
            argument_error=None if isinstance(arguments, dict) else "Invalid tool call arguments",
        )

    @staticmethod
    def _parse_call(raw: Any) -> ToolCallRequest:
        """Normalize a backend tool call (dict or SDK object)."""
        def field(obj: Any, name: str) -> Any:
            if isinstance(obj, dict):
                return obj.get(name)
            return getattr(obj, name, None)

        function = field(raw, "function") or {}
        name = field(function, "name") or ""
        raw_arguments = field(function, "arguments")

        arguments: dict[str, Any] = {}
        argument_error = None
        if isinstance(raw_arguments, str):
            try:
                decoded = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, dict):
                arguments = decoded
            else:
                argument_error = "Invalid tool call arguments"
        elif isinstance(raw_arguments, dict):
            arguments = dict(raw_arguments)
        elif raw_arguments is not None:
            argument_error = "Invalid tool call arguments"

        return ToolCallRequest(
            correlation_id=field(raw, "id") or new_correlation_id(),
            tool_name=name,
            arguments=arguments,
            argument_error=argument_error,
        )


Responder = Callable[[Sequence[Message], Sequence[ToolManifestEntry]], ModelTurn]


class MockModelGateway(ModelGateway):
    """
    Scripted gateway for tests and offline runs.

    Responses are served from a queue; a responder callable, when given,
    answers once the queue is empty. Exceptions placed in the queue are
    raised as GatewayFailure.
    """

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        responses: Optional[Iterable[Union[ModelTurn, Exception]]] = None,
        responder: Optional[Responder] = None
    ) -> None:
        self.settings = settings
        self.responder = responder
        self.call_history: list[dict[str, Any]] = []
        self._queue: deque[Union[ModelTurn, Exception]] = deque(responses or [])

    def set_next_response(self, response: Union[ModelTurn, Exception]) -> None:
        self._queue.append(response)

    def queue(self, *responses: Union[ModelTurn, Exception]) -> None:
        self._queue.extend(responses)

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    async def complete(
        self,
        history: Sequence[Message],
        tools: Sequence[ToolManifestEntry]
    ) -> ModelTurn:
        self.call_history.append({
            "history": tuple(history),
            "tools": list(tools),
        })

        if self._queue:
            response = self._queue.popleft()
        elif self.responder is not None:
            response = self.responder(history, tools)
        else:
            response = ModelTurn(text="This is a mock response.")

        if isinstance(response, Exception):
            raise GatewayFailure(str(response)) from response

        return response.model_copy(deep=True)


def create_model_gateway(settings: LLMSettings) -> ModelGateway:
    """
    Factory function to create the configured model gateway.

    Supports:
    - ollama: local Ollama server
    - openai: OpenAI API
    - mock: scripted mock gateway

    Args:
        settings: Model configuration settings

    Returns:
        Configured model gateway

    Raises:
        ValueError: If provider is not supported
    """
    providers: dict[str, Callable[[LLMSettings], ModelGateway]] = {
        "ollama": LlamaIndexGateway,
        "openai": LlamaIndexGateway,
        "mock": MockModelGateway,
    }

    factory = providers.get(settings.provider)
    if not factory:
        raise ValueError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating model gateway", provider=settings.provider, model=settings.model)
    return factory(settings)
