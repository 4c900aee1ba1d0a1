"""Orchestrator - FastAPI Application.

Serves the agent over HTTP:
- Chat API, one independent conversation per session
- Session inspection and deletion
- Tool manifest listing
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, status
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from shared.models import TurnStatus
from orchestrator.bootstrap import Components, build_components
from orchestrator.sessions import SessionManager

logger = get_logger(__name__)


# Request/Response Models
class ChatRequest(BaseModel):
    """Chat request from a client."""
    message: str = Field(..., min_length=1, description="User message")
    session_id: Optional[str] = Field(default=None, description="Existing session ID")


class ChatResponse(BaseModel):
    """Chat response to a client."""
    session_id: str
    response: str
    status: TurnStatus
    rounds: int
    tool_suppressed: bool
    request_id: str


class SessionListResponse(BaseModel):
    """List of sessions."""
    sessions: list[dict[str, Any]]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    provider: str
    tool_count: int
    session_count: int


async def cleanup_sessions_task(manager: SessionManager, interval: int = 300):
    """Background task to clean up expired sessions."""
    while True:
        await asyncio.sleep(interval)
        try:
            await manager.cleanup_expired()
        except Exception as e:
            logger.error("Session cleanup failed", error=str(e))


def create_app(
    settings: Optional[Settings] = None,
    components: Optional[Components] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to use (loaded from config when omitted)
        components: Prebuilt collaborators (built from settings when omitted)

    Returns:
        Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Orchestrator")

        resolved = components.settings if components else (settings or get_settings())
        setup_logging(resolved.log_level, json_output=resolved.environment == "production")

        built = components or build_components(resolved)
        manager = SessionManager(
            resolved.orchestrator,
            gateway=built.gateway,
            registry=built.registry,
            dispatcher=built.dispatcher
        )
        cleanup_task = asyncio.create_task(cleanup_sessions_task(manager))

        app.state.components = built
        app.state.sessions = manager

        logger.info("Orchestrator started", tools=built.registry.names())

        yield

        logger.info("Shutting down Orchestrator")

        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

        await built.close()

    app = FastAPI(
        title="Portfolio Agent",
        description="Conversational agent over a developer's portfolio",
        version="0.1.0",
        lifespan=lifespan
    )

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request):
        """Health check endpoint."""
        built: Components = request.app.state.components
        manager: SessionManager = request.app.state.sessions

        return HealthResponse(
            status="healthy",
            provider=built.settings.llm.provider,
            tool_count=len(built.registry),
            session_count=manager.get_stats()["total_sessions"]
        )

    @app.post("/chat", response_model=ChatResponse, tags=["Chat"])
    async def chat(payload: ChatRequest, request: Request):
        """
        Process a chat message.

        Creates a session when none (or an expired one) is given.
        """
        manager: SessionManager = request.app.state.sessions

        session = await manager.get_or_create(payload.session_id)
        session.touch()
        result = await session.orchestrator.handle(payload.message)
        session.touch()

        return ChatResponse(
            session_id=session.id,
            response=result.text,
            status=result.status,
            rounds=result.rounds,
            tool_suppressed=result.tool_suppressed,
            request_id=result.request_id
        )

    @app.get("/sessions", response_model=SessionListResponse, tags=["Sessions"])
    async def list_sessions(request: Request):
        """List live sessions."""
        return SessionListResponse(sessions=request.app.state.sessions.list_sessions())

    @app.get("/sessions/{session_id}", tags=["Sessions"])
    async def get_session(session_id: str, request: Request):
        """Get the message history of a session."""
        session = await request.app.state.sessions.get(session_id)
        if session is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Session not found"
            )

        messages = [
            message.model_dump(mode="json", exclude_defaults=True)
            for message in session.orchestrator.history
        ]
        return {"session_id": session_id, "messages": messages}

    @app.delete("/sessions/{session_id}", tags=["Sessions"])
    async def delete_session(session_id: str, request: Request):
        """Delete a session."""
        deleted = await request.app.state.sessions.delete(session_id)
        if not deleted:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Session not found"
            )

        return {"status": "deleted"}

    @app.get("/tools", tags=["Tools"])
    async def list_tools(request: Request):
        """List the tool manifest offered to the model."""
        tools = [entry.model_dump() for entry in request.app.state.components.registry.manifest()]
        return {"tools": tools, "count": len(tools)}

    return app


app = create_app()


def main():
    """Run the Orchestrator server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.orchestrator.host,
        port=settings.orchestrator.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
