"""Chat service entry point."""

import asyncio
import logging

from src.config import require_settings, settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from src.api.server import ChatServer

    server = ChatServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Validate configuration and run the HTTP server until interrupted."""
    require_settings()
    logger.info("Starting chat service with model %s...", settings.claude_model)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
