"""Tool dispatch for the orchestrator.

Resolves a model-emitted call against the registry, validates its
arguments, invokes the capability and converts every outcome, including
failures, into a ToolResult whose text is fed back to the model.
"""

import asyncio
import inspect
import json
import time
from typing import Any, Optional

from shared.logging import get_logger
from shared.models import ToolCallRequest, ToolResult, ToolResultStatus
from orchestrator.audit import AuditLogger
from orchestrator.registry import ToolCapability, ToolRegistry

logger = get_logger(__name__)


UNKNOWN_TOOL_MARKER = "[UNKNOWN_TOOL]"
INVALID_ARGUMENTS_MARKER = "[INVALID_ARGUMENTS]"
TOOL_ERROR_MARKER = "[TOOL_ERROR]"
TOOL_TIMEOUT_MARKER = "[TOOL_TIMEOUT]"


class ToolDispatcher:
    """
    Executes tool calls on behalf of the orchestrator.

    Never raises for tool-level problems: unknown tools, invalid
    arguments, failures and timeouts all become ToolResult text so the
    model can recover.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        audit_logger: Optional[AuditLogger] = None,
        timeout_seconds: Optional[float] = None
    ) -> None:
        self.registry = registry
        self.audit_logger = audit_logger
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        call: ToolCallRequest,
        session_id: Optional[str] = None
    ) -> ToolResult:
        """
        Execute a single tool call.

        Args:
            call: Call request emitted by the model
            session_id: Owning session, for auditing

        Returns:
            Tool result; failures are encoded in its content
        """
        start_time = time.perf_counter()
        tool_name = call.tool_name

        logger.debug(
            "Dispatching tool",
            tool=tool_name,
            correlation_id=call.correlation_id
        )

        capability = self.registry.resolve(tool_name)
        if capability is None:
            available = ", ".join(self.registry.names()) or "none"
            result = self._result(
                call,
                ToolResultStatus.NOT_FOUND,
                f"{UNKNOWN_TOOL_MARKER} No tool named '{tool_name}' is registered. "
                f"Available tools: {available}."
            )
            logger.warning("Unknown tool requested", tool=tool_name)
        elif call.argument_error:
            result = self._result(
                call,
                ToolResultStatus.VALIDATION_ERROR,
                f"{INVALID_ARGUMENTS_MARKER} {tool_name}: {call.argument_error}"
            )
        else:
            is_valid, errors = self.registry.validate_arguments(tool_name, call.arguments)
            if not is_valid:
                result = self._result(
                    call,
                    ToolResultStatus.VALIDATION_ERROR,
                    f"{INVALID_ARGUMENTS_MARKER} {tool_name}: {'; '.join(errors)}"
                )
            else:
                result = await self._invoke(capability, call)

        result.execution_time_ms = (time.perf_counter() - start_time) * 1000

        if self.audit_logger is not None:
            await self.audit_logger.log(call, result, session_id)

        return result

    async def _invoke(
        self,
        capability: ToolCapability,
        call: ToolCallRequest
    ) -> ToolResult:
        try:
            output = await self._run(capability, call.arguments)
        except asyncio.TimeoutError:
            logger.warning(
                "Tool timed out",
                tool=capability.name,
                timeout=self.timeout_seconds
            )
            return self._result(
                call,
                ToolResultStatus.TIMEOUT,
                f"{TOOL_TIMEOUT_MARKER} {capability.name} did not finish within "
                f"{self.timeout_seconds:g} seconds."
            )
        except Exception as e:
            logger.error(
                "Tool execution failed",
                tool=capability.name,
                error=str(e),
                exc_info=True
            )
            return self._result(
                call,
                ToolResultStatus.ERROR,
                f"{TOOL_ERROR_MARKER} {capability.name} failed: {e}"
            )

        return self._result(call, ToolResultStatus.SUCCESS, self._format_output(output))

    async def _run(self, capability: ToolCapability, arguments: dict[str, Any]) -> Any:
        if self.timeout_seconds:
            return await asyncio.wait_for(
                self._call(capability, arguments),
                timeout=self.timeout_seconds
            )
        return await self._call(capability, arguments)

    @staticmethod
    async def _call(capability: ToolCapability, arguments: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(capability.invoke):
            return await capability.invoke(dict(arguments))

        # Sync capabilities run in a worker thread
        output = await asyncio.to_thread(capability.invoke, dict(arguments))
        if inspect.isawaitable(output):
            output = await output
        return output

    @staticmethod
    def _format_output(output: Any) -> str:
        if output is None:
            return "Tool executed successfully."

        if isinstance(output, str):
            return output

        return json.dumps(output, indent=2, default=str)

    @staticmethod
    def _result(
        call: ToolCallRequest,
        status: ToolResultStatus,
        content: str
    ) -> ToolResult:
        return ToolResult(
            tool_name=call.tool_name,
            correlation_id=call.correlation_id,
            status=status,
            content=content
        )
