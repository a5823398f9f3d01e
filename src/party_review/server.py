"""FastAPI server with MCP integration and REST API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from party_review.config import load_config
from party_review.discussion import DiscussionEngine
from party_review.session_store import SessionStore
from party_review.tools import mcp, set_engine


def create_app(project_dir: str | Path | None = None) -> FastAPI:
    """Create the FastAPI application."""
    config = load_config(project_dir if project_dir is not None else Path.cwd())
    store = SessionStore(capacity=config.max_sessions, idle_timeout=config.idle_timeout)
    engine = DiscussionEngine(store=store, project_dir=config.project_dir)
    set_engine(engine)

    # Mounted at /mcp below, so the endpoint is /mcp/
    mcp_http_app = mcp.http_app(path="/")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with mcp_http_app.lifespan(app):
            yield

    app = FastAPI(title="Party Review", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine

    # ------------------------------------------------------------------
    # Discussion
    # ------------------------------------------------------------------

    @app.post("/api/discussion")
    async def api_discussion(request: Request):
        # Body is validated by the engine, not FastAPI
        try:
            body = await request.json() if await request.body() else {}
        except ValueError:
            body = {}
        result = await engine.handle(body if isinstance(body, dict) else {})
        return JSONResponse(result.to_payload())

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @app.get("/api/sessions")
    async def api_list_sessions():
        return JSONResponse(engine.store.list_sessions())

    @app.get("/api/sessions/{session_id}")
    async def api_get_session(session_id: str):
        session = engine.store.peek(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return JSONResponse(session.model_dump(mode="json", by_alias=True))

    # --- MCP mount ---
    app.mount("/mcp", mcp_http_app)

    return app
