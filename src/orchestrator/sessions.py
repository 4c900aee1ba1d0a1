"""Session Manager for the orchestrator.

Each session owns an independent ConversationState and Orchestrator. The
sealed tool registry, model gateway and dispatcher are shared.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.config import OrchestratorSettings
from shared.logging import get_logger
from orchestrator.dispatch import ToolDispatcher
from orchestrator.engine import Orchestrator
from orchestrator.llm import ModelGateway
from orchestrator.registry import ToolRegistry

logger = get_logger(__name__)


class Session(BaseModel):
    """A live conversation with its orchestrator."""
    id: str
    orchestrator: Orchestrator
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()


class SessionManager:
    """
    Manages conversation sessions.

    Responsibilities:
    - Create and retrieve sessions
    - Expire idle sessions
    - Report session statistics
    """

    def __init__(
        self,
        settings: OrchestratorSettings,
        gateway: ModelGateway,
        registry: ToolRegistry,
        dispatcher: Optional[ToolDispatcher] = None
    ) -> None:
        """
        Initialize session manager.

        Args:
            settings: Turn loop configuration applied to every session
            gateway: Shared model gateway
            registry: Shared, sealed tool registry
            dispatcher: Shared tool dispatcher
        """
        self.settings = settings
        self.gateway = gateway
        self.registry = registry
        self.dispatcher = dispatcher or ToolDispatcher(
            registry, timeout_seconds=settings.tool_timeout_seconds
        )
        self.ttl = timedelta(minutes=settings.session_ttl_minutes)

        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self) -> Session:
        """Create a new session."""
        session_id = str(uuid.uuid4())
        orchestrator = Orchestrator.from_settings(
            self.settings,
            gateway=self.gateway,
            registry=self.registry,
            dispatcher=self.dispatcher,
            session_id=session_id
        )
        session = Session(id=session_id, orchestrator=orchestrator)

        async with self._lock:
            self._sessions[session_id] = session

        logger.info("Session created", session_id=session_id)

        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """
        Get a session by ID.

        Returns:
            Session if found and not expired, None otherwise
        """
        session = self._sessions.get(session_id)

        if session is None:
            return None

        if datetime.utcnow() - session.updated_at > self.ttl:
            await self.delete(session_id)
            return None

        return session

    async def get_or_create(self, session_id: Optional[str]) -> Session:
        """Get an existing session or create a new one."""
        if session_id:
            session = await self.get(session_id)
            if session:
                return session

        return await self.create()

    async def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted, False if not found
        """
        async with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                logger.info("Session deleted", session_id=session_id)
                return True
        return False

    async def cleanup_expired(self) -> int:
        """
        Remove idle sessions past their time-to-live.

        Returns:
            Number of sessions removed
        """
        now = datetime.utcnow()

        async with self._lock:
            expired = [
                session_id for session_id, session in self._sessions.items()
                if now - session.updated_at > self.ttl
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info("Expired sessions cleaned up", count=len(expired))

        return len(expired)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Summaries of all live sessions."""
        return [
            {
                "id": s.id,
                "message_count": len(s.orchestrator.conversation),
                "state": s.orchestrator.state.value,
                "created_at": s.created_at.isoformat(),
                "updated_at": s.updated_at.isoformat()
            }
            for s in self._sessions.values()
        ]

    def get_stats(self) -> dict[str, Any]:
        """Get session manager statistics."""
        return {
            "total_sessions": len(self._sessions),
            "ttl_minutes": self.ttl.total_seconds() / 60
        }
