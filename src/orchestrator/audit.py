"""Audit trail of tool dispatches.

One JSON line per dispatch: session, tool, correlation id, redacted
arguments, status and timing. Lines are buffered and appended with
aiofiles.
"""

import asyncio
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

import aiofiles

from shared.logging import get_logger
from shared.models import AuditEntry, ToolCallRequest, ToolResult, ToolResultStatus

logger = get_logger(__name__)


REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset({"password", "token", "secret", "api_key", "apikey", "credential"})


def redact(arguments: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``arguments`` with credential-like keys masked, at any depth."""
    masked: dict[str, Any] = {}
    for key, value in arguments.items():
        if key.lower() in SENSITIVE_KEYS:
            masked[key] = REDACTED
        elif isinstance(value, dict):
            masked[key] = redact(value)
        else:
            masked[key] = value
    return masked


class AuditLogger:
    """Buffered JSON-lines audit log for the tool dispatcher."""

    def __init__(
        self,
        log_path: str = "logs/audit.log",
        enabled: bool = True,
        buffer_size: int = 50
    ) -> None:
        self.log_path = Path(log_path)
        self.enabled = enabled
        self.buffer_size = max(1, buffer_size)
        self._pending: list[AuditEntry] = []
        self._lock = asyncio.Lock()

        if enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def create_entry(
        self,
        call: ToolCallRequest,
        result: ToolResult,
        session_id: Optional[str] = None
    ) -> AuditEntry:
        return AuditEntry(
            id=str(uuid.uuid4()),
            timestamp=datetime.utcnow(),
            session_id=session_id,
            tool_name=call.tool_name,
            correlation_id=call.correlation_id,
            arguments=redact(call.arguments),
            status=result.status,
            execution_time_ms=result.execution_time_ms,
        )

    async def log(
        self,
        call: ToolCallRequest,
        result: ToolResult,
        session_id: Optional[str] = None
    ) -> None:
        """Record one dispatch; writes once ``buffer_size`` entries are pending."""
        if not self.enabled:
            return

        entry = self.create_entry(call, result, session_id)
        logger.info(
            "Tool dispatched",
            audit_id=entry.id,
            tool=entry.tool_name,
            correlation_id=entry.correlation_id,
            status=entry.status.value,
            execution_time_ms=round(entry.execution_time_ms, 2)
        )

        async with self._lock:
            self._pending.append(entry)
            if len(self._pending) >= self.buffer_size:
                await self._write_pending()

    async def flush(self) -> None:
        async with self._lock:
            await self._write_pending()

    async def _write_pending(self) -> None:
        if not self._pending:
            return

        batch, self._pending = self._pending, []
        lines = "".join(entry.model_dump_json() + "\n" for entry in batch)

        try:
            async with aiofiles.open(self.log_path, "a") as f:
                await f.write(lines)
        except OSError as e:
            logger.error("Audit write failed", path=str(self.log_path), error=str(e))
            self._pending = batch + self._pending

    async def query(
        self,
        session_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        status: Optional[ToolResultStatus] = None,
        limit: int = 100
    ) -> list[AuditEntry]:
        """
        Read back written entries, oldest first.

        Args:
            session_id: Only entries of this session
            tool_name: Only entries for this tool
            status: Only entries with this status
            limit: Maximum number of entries

        Returns:
            Matching entries
        """
        if not self.log_path.exists():
            return []

        async with aiofiles.open(self.log_path, "r") as f:
            content = await f.read()

        matches = []
        for entry in self._parse(content):
            if session_id and entry.session_id != session_id:
                continue
            if tool_name and entry.tool_name != tool_name:
                continue
            if status and entry.status != status:
                continue
            matches.append(entry)
            if len(matches) >= limit:
                break

        return matches

    @staticmethod
    def _parse(content: str) -> Iterator[AuditEntry]:
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                yield AuditEntry(**json.loads(line))
            except ValueError:
                logger.warning("Skipping malformed audit line")
