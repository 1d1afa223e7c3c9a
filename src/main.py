"""Memory chat server entry point."""

import asyncio
import logging

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the HTTP/WebSocket server and block until interrupted."""
    from src.server.app import ChatServer

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is empty: chat, embeddings and realtime will fail")

    async def _run() -> None:
        server = ChatServer()
        await server.start()
        try:
            await asyncio.Event().wait()
        finally:
            await server.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
