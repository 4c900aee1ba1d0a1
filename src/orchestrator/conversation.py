"""Conversation state for the orchestrator.

An ordered, append-only record of the dialogue. Each orchestrator owns
exactly one; it is never trimmed or rewritten.
"""

from typing import Callable, Iterator, Optional

from shared.logging import get_logger
from shared.models import Message, Role, ToolCallRequest

logger = get_logger(__name__)


class ConversationIntegrityError(ValueError):
    """An append would break the call/result pairing of the conversation."""


class ConversationState:
    """
    Append-only message history.

    Invariants enforced on append:
    - correlation ids are unique across all tool calls in the conversation
    - every tool result references an earlier call
    - each call has at most one result
    """

    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._messages: list[Message] = []
        self._call_ids: set[str] = set()
        self._result_ids: set[str] = set()

        if system_prompt:
            self.append_system(system_prompt)

    def append(self, message: Message) -> Message:
        """
        Append a message after checking call/result pairing.

        Raises:
            ConversationIntegrityError: If the message would break pairing
        """
        if message.tool_calls:
            ids = [call.correlation_id for call in message.tool_calls]
            if len(set(ids)) != len(ids):
                raise ConversationIntegrityError(
                    "Tool calls in one message must have distinct correlation ids"
                )
            reused = self._call_ids.intersection(ids)
            if reused:
                raise ConversationIntegrityError(
                    f"Correlation ids already used: {sorted(reused)}"
                )

        if message.role == Role.TOOL:
            correlation_id = message.tool_result_for
            if correlation_id not in self._call_ids:
                raise ConversationIntegrityError(
                    f"No tool call with correlation id '{correlation_id}'"
                )
            if correlation_id in self._result_ids:
                raise ConversationIntegrityError(
                    f"Tool call '{correlation_id}' already has a result"
                )
            self._result_ids.add(correlation_id)

        self._call_ids.update(call.correlation_id for call in message.tool_calls)
        self._messages.append(message)
        return message

    def append_system(self, text: str) -> Message:
        return self.append(Message(role=Role.SYSTEM, text=text))

    def append_user(self, text: str) -> Message:
        return self.append(Message(role=Role.USER, text=text))

    def append_assistant(
        self,
        text: Optional[str],
        tool_calls: Optional[list[ToolCallRequest]] = None
    ) -> Message:
        return self.append(Message(
            role=Role.ASSISTANT,
            text=text,
            tool_calls=tool_calls or []
        ))

    def append_assistant_once(self, text: str) -> Optional[Message]:
        """
        Append a plain assistant message unless the tail already holds it.

        Returns:
            The appended message, or None if it was a duplicate
        """
        if self.tail_is_assistant_text(text):
            logger.debug("Skipping duplicate assistant message")
            return None
        return self.append_assistant(text)

    def append_tool_result(self, correlation_id: str, text: str) -> Message:
        return self.append(Message(
            role=Role.TOOL,
            text=text,
            tool_result_for=correlation_id
        ))

    def snapshot(self) -> tuple[Message, ...]:
        """Immutable view handed to the model gateway."""
        return tuple(self._messages)

    @property
    def tail(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def has_call(self, correlation_id: str) -> bool:
        return correlation_id in self._call_ids

    def results_for(self, correlation_id: str) -> list[Message]:
        return [
            m for m in self._messages
            if m.role == Role.TOOL and m.tool_result_for == correlation_id
        ]

    def pending_call_ids(self) -> set[str]:
        """Calls that have not received a result yet."""
        return self._call_ids - self._result_ids

    def last_assistant_text(
        self,
        accept: Optional[Callable[[str], bool]] = None
    ) -> Optional[str]:
        """
        Most recent non-empty assistant text.

        Args:
            accept: Optional predicate the text must satisfy

        Returns:
            The text, or None if no assistant message qualifies
        """
        for message in reversed(self._messages):
            if message.role != Role.ASSISTANT or not message.text:
                continue
            if not message.text.strip():
                continue
            if accept is None or accept(message.text):
                return message.text
        return None

    def tail_is_assistant_text(self, text: str) -> bool:
        """True if the last message is a plain assistant message with this text."""
        tail = self.tail
        return (
            tail is not None
            and tail.role == Role.ASSISTANT
            and not tail.tool_calls
            and (tail.text or "").strip() == text.strip()
        )

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
