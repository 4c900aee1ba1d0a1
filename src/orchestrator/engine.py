"""Orchestrator - the per-conversation turn loop.

The orchestrator coordinates:
- Conversation state
- Turn policy (when tools are offered)
- Model gateway rounds
- Sequential tool dispatch
- Loop safety and leakage handling of the final answer
"""

import asyncio
import uuid
from typing import Optional

from shared.config import (
    DEFAULT_GATEWAY_FAILURE_TEXT,
    DEFAULT_LOOP_GUARD_TEXT,
    DEFAULT_NO_RESPONSE_TEXT,
    OrchestratorSettings,
)
from shared.logging import bind_context, clear_context, get_logger
from shared.models import (
    Message,
    ModelTurn,
    ToolCallRequest,
    ToolManifestEntry,
    TurnKind,
    TurnResult,
    TurnState,
    TurnStatus,
)
from orchestrator.conversation import ConversationState
from orchestrator.dispatch import ToolDispatcher
from orchestrator.llm import ModelGateway, new_correlation_id
from orchestrator.policy import LeakageDetector, LoopGuard, LoopGuardExceeded, TurnPolicy
from orchestrator.registry import ToolRegistry

logger = get_logger(__name__)


class Orchestrator:
    """
    Drives one conversation through the turn state machine.

    States: AWAITING_USER_INPUT -> THINKING -> {TOOL_DISPATCH -> THINKING}*
    -> PRESENTING -> AWAITING_USER_INPUT.

    One user turn runs to completion before the next is accepted. Tool
    calls in an assistant turn are dispatched sequentially in the order the
    model emitted them. Tool failures are fed back to the model; gateway
    failures end the turn.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        registry: ToolRegistry,
        dispatcher: Optional[ToolDispatcher] = None,
        policy: Optional[TurnPolicy] = None,
        leakage_detector: Optional[LeakageDetector] = None,
        max_rounds: int = 3,
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
        no_response_text: str = DEFAULT_NO_RESPONSE_TEXT,
        loop_guard_text: str = DEFAULT_LOOP_GUARD_TEXT,
        gateway_failure_text: str = DEFAULT_GATEWAY_FAILURE_TEXT
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            gateway: Model gateway producing assistant turns
            registry: Registry the dispatcher resolves tools against
            dispatcher: Tool dispatcher (defaults to one over ``registry``)
            policy: Tool-suppression policy
            leakage_detector: Predicate for non-prose final text
            max_rounds: Gateway rounds allowed per user turn
            system_prompt: Optional first message of the conversation
            session_id: Identifier used in logs and audit entries
            no_response_text: Fallback when no usable answer exists
            loop_guard_text: Answer when the loop guard trips
            gateway_failure_text: Answer when the gateway fails
        """
        self.gateway = gateway
        self.registry = registry
        self.dispatcher = dispatcher or ToolDispatcher(registry)
        self.policy = policy or TurnPolicy()
        self.leakage_detector = leakage_detector or LeakageDetector()
        self.loop_guard = LoopGuard(max_rounds)
        self.session_id = session_id or str(uuid.uuid4())
        self.conversation = ConversationState(system_prompt)

        self.no_response_text = no_response_text
        self.loop_guard_text = loop_guard_text
        self.gateway_failure_text = gateway_failure_text

        self._state = TurnState.AWAITING_USER_INPUT
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: OrchestratorSettings,
        gateway: ModelGateway,
        registry: ToolRegistry,
        dispatcher: Optional[ToolDispatcher] = None,
        session_id: Optional[str] = None
    ) -> "Orchestrator":
        """Build an orchestrator with policies taken from configuration."""
        return cls(
            gateway=gateway,
            registry=registry,
            dispatcher=dispatcher,
            policy=TurnPolicy(settings.trigger_phrases),
            leakage_detector=LeakageDetector(
                placeholders=settings.leak_placeholders,
                markers=settings.leak_markers
            ),
            max_rounds=settings.max_rounds,
            system_prompt=settings.system_prompt,
            session_id=session_id,
            no_response_text=settings.no_response_text,
            loop_guard_text=settings.loop_guard_text,
            gateway_failure_text=settings.gateway_failure_text,
        )

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def history(self) -> tuple[Message, ...]:
        return self.conversation.snapshot()

    def _transition(self, state: TurnState) -> None:
        logger.debug("Turn state", previous=self._state.value, current=state.value)
        self._state = state

    async def handle(self, user_text: str) -> TurnResult:
        """
        Process one user turn.

        This is the main entry point for chat interactions. Concurrent
        calls on the same orchestrator are serialized.

        Args:
            user_text: The user's input

        Returns:
            The text to present and how the turn ended
        """
        async with self._lock:
            request_id = str(uuid.uuid4())
            bind_context(session_id=self.session_id, request_id=request_id)
            try:
                return await self._run_turn(user_text, request_id)
            finally:
                self._transition(TurnState.AWAITING_USER_INPUT)
                clear_context("session_id", "request_id")

    async def _run_turn(self, user_text: str, request_id: str) -> TurnResult:
        self.conversation.append_user(user_text)

        suppressed = self.policy.is_tool_suppressed(user_text)
        manifest: list[ToolManifestEntry] = [] if suppressed else self.registry.manifest()

        logger.info(
            "Processing turn",
            tool_suppressed=suppressed,
            tools_offered=len(manifest)
        )

        self.loop_guard.reset()

        while True:
            try:
                rounds = self.loop_guard.advance()
            except LoopGuardExceeded:
                logger.warning(
                    "Max tool rounds reached",
                    max_rounds=self.loop_guard.bound
                )
                self.conversation.append_assistant_once(self.loop_guard_text)
                return self._present(
                    text=self.loop_guard_text,
                    status=TurnStatus.LOOP_GUARD_EXCEEDED,
                    rounds=self.loop_guard.bound,
                    suppressed=suppressed,
                    request_id=request_id
                )

            self._transition(TurnState.THINKING)

            try:
                turn = await self.gateway.complete(self.conversation.snapshot(), manifest)
            except Exception as e:
                logger.error(
                    "Gateway call failed, aborting turn",
                    round=rounds,
                    error=str(e),
                    exc_info=True
                )
                return self._present(
                    text=self.gateway_failure_text,
                    status=TurnStatus.GATEWAY_FAILED,
                    rounds=rounds,
                    suppressed=suppressed,
                    request_id=request_id
                )

            if turn.kind == TurnKind.TOOL_CALLS and suppressed:
                logger.warning(
                    "Discarding tool calls on tool-suppressed turn",
                    count=len(turn.tool_calls)
                )
                turn = ModelTurn(text=turn.text)

            if turn.kind == TurnKind.TOOL_CALLS:
                await self._dispatch_round(turn, rounds)
                continue

            text, leaked = self._final_text(turn.text)
            self.conversation.append_assistant_once(text)
            return self._present(
                text=text,
                status=TurnStatus.COMPLETED,
                rounds=rounds,
                suppressed=suppressed,
                leaked=leaked,
                request_id=request_id
            )

    async def _dispatch_round(self, turn: ModelTurn, rounds: int) -> None:
        calls = self._with_unique_ids(turn.tool_calls)

        logger.debug("Model requested tool calls", count=len(calls), round=rounds)

        # The raw requests are kept in history before any result
        self.conversation.append_assistant(turn.text, calls)

        self._transition(TurnState.TOOL_DISPATCH)
        for call in calls:
            result = await self.dispatcher.dispatch(call, session_id=self.session_id)
            self.conversation.append_tool_result(call.correlation_id, result.content)

    def _with_unique_ids(self, calls: list[ToolCallRequest]) -> list[ToolCallRequest]:
        """Re-key calls whose correlation id is missing or already used."""
        seen: set[str] = set()
        unique = []
        for call in calls:
            correlation_id = call.correlation_id
            if (
                not correlation_id
                or correlation_id in seen
                or self.conversation.has_call(correlation_id)
            ):
                fresh = new_correlation_id()
                logger.warning(
                    "Duplicate correlation id re-keyed",
                    tool=call.tool_name,
                    original=correlation_id,
                    replacement=fresh
                )
                call = call.model_copy(update={"correlation_id": fresh})
            seen.add(call.correlation_id)
            unique.append(call)
        return unique

    def _final_text(self, text: Optional[str]) -> tuple[str, bool]:
        """
        Apply the leakage guard to the terminal assistant text.

        Returns:
            Tuple of (text to surface, whether a substitution happened)
        """
        reason = self.leakage_detector.reason(text)
        if reason is None:
            return text or "", False

        substitute = self.conversation.last_assistant_text(
            accept=lambda candidate: not self.leakage_detector.is_leak(candidate)
        )

        logger.info(
            "Leakage detected in final answer",
            reason=reason,
            substituted=substitute is not None
        )

        return substitute or self.no_response_text, True

    def _present(
        self,
        text: str,
        status: TurnStatus,
        rounds: int,
        suppressed: bool,
        request_id: str,
        leaked: bool = False
    ) -> TurnResult:
        self._transition(TurnState.PRESENTING)

        logger.info(
            "Turn complete",
            status=status.value,
            rounds=rounds,
            history_length=len(self.conversation)
        )

        return TurnResult(
            text=text,
            status=status,
            rounds=rounds,
            tool_suppressed=suppressed,
            leakage_detected=leaked,
            request_id=request_id
        )
