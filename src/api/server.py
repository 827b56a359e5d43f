"""HTTP surface for the chat service.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from aiohttp import web

from src.chat.orchestrator import TurnOrchestrator
from src.config import settings
from src.context.memory import InMemoryStore

logger = logging.getLogger(__name__)

ORCHESTRATOR = web.AppKey("orchestrator", TurnOrchestrator)

SERVER_ERROR_REPLY = "Sorry, something went wrong. Please try again."


async def _handle_chat(request: web.Request) -> web.Response:
    """POST /chat: run one conversation turn."""
    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning("Chat bad request: invalid JSON")
        return web.json_response({"error": "invalid JSON"}, status=400)

    if not isinstance(payload, dict):
        return web.json_response({"error": "expected a JSON object"}, status=400)
    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        return web.json_response({"error": "message is required"}, status=400)
    conversation_id = payload.get("conversation_id")
    if conversation_id is not None and not isinstance(conversation_id, str):
        return web.json_response({"error": "conversation_id must be a string"}, status=400)

    orchestrator = request.app[ORCHESTRATOR]
    try:
        result = await orchestrator.handle(message.strip(), conversation_id or None)
    except Exception:
        logger.exception("Chat turn failed (conversation=%s)", conversation_id)
        return web.json_response(
            {"error": "Internal server error", "reply": SERVER_ERROR_REPLY}, status=500
        )

    external = result.external_context
    return web.json_response({
        "reply": result.reply,
        "externalContext": external.to_dict() if external is not None else None,
        "conversation_id": result.conversation_id,
        "debug": result.debug,
    })


async def _handle_stats(request: web.Request) -> web.Response:
    """GET /stats/{conversation_id}: what is remembered about a conversation."""
    conversation_id = request.match_info["conversation_id"]
    stats = request.app[ORCHESTRATOR].extractor.stats(conversation_id)
    if stats is None:
        return web.json_response({"error": "conversation not found"}, status=404)
    return web.json_response(stats)


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "conversations": len(request.app[ORCHESTRATOR].store),
    })


def _static_routes(app: web.Application, static_dir: Path) -> None:
    index = static_dir / "index.html"

    async def _index(request: web.Request) -> web.StreamResponse:
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index)

    app.router.add_get("/", _index)
    app.router.add_static("/", static_dir)
    logger.info("Serving static files from %s", static_dir)


def create_app(
    orchestrator: TurnOrchestrator,
    static_dir: Path | None = None,
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application()
    app[ORCHESTRATOR] = orchestrator
    app.router.add_post("/chat", _handle_chat)
    app.router.add_get("/stats/{conversation_id}", _handle_stats)
    app.router.add_get("/health", _health)

    static_dir = static_dir if static_dir is not None else settings.static_dir
    if static_dir.is_dir():
        _static_routes(app, static_dir)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self,
        orchestrator: TurnOrchestrator | None = None,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.orchestrator = orchestrator or TurnOrchestrator(InMemoryStore())
        self.host = host or settings.host
        self.port = port or settings.port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        app = create_app(self.orchestrator)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Chat server listening on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Chat server stopped")
