"""Conversation server entry point.

Wires configuration, catalogs, the Gemini session factory, the websocket
transport and the side HTTP app together and runs until interrupted.
"""

import argparse
import asyncio
import logging
from pathlib import Path

from aiohttp.web import Application, AppRunner, TCPSite
from dotenv import load_dotenv

from src.palooza.auth import AllowAllVerifier, StaticTokenVerifier, TokenVerifier
from src.palooza.backend.gemini import GeminiSessionFactory
from src.palooza.config import AuthConfig, PaloozaConfig
from src.palooza.handler import ConversationHandler, ConversationTracker
from src.palooza.http_api import ApiHandler, setup_routes
from src.palooza.registry import load_catalog
from src.palooza.summary import ConversationSummarizer
from src.palooza.transport.base import ClientChannel
from src.palooza.transport.websocket_transport import WebSocketTransport

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "configs" / "palooza.yaml"


def build_verifier(config: AuthConfig) -> TokenVerifier:
    if not config.enabled:
        logger.warning("Client authentication disabled")
        return AllowAllVerifier()
    return StaticTokenVerifier(config.tokens)


async def start_server(config_path: Path | None = None, config: PaloozaConfig | None = None) -> None:
    """Start the conversation server.

    Args:
        config_path: Path to YAML config file (defaults apply if it doesn't exist)
        config: Optional pre-built configuration (for testing)

    Raises:
        ConfigurationError: If the API key or a configured catalog file is missing
        OSError: If a listening port cannot be bound
    """
    if config is None:
        config = PaloozaConfig.from_yaml_with_defaults(config_path)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(
        "Loaded configuration",
        extra={"config_path": str(config_path), "model": config.backend.live_model},
    )

    # Fatal configuration errors surface before any socket is bound
    factory = GeminiSessionFactory(config.backend)
    personas, styles = load_catalog(config.catalog)

    tracker = ConversationTracker()

    async def handle_channel(channel: ClientChannel) -> None:
        handler = ConversationHandler(channel, factory, config.conversation, tracker)
        await handler.run()

    ws_config = config.transport.websocket
    transport = WebSocketTransport(
        handler=handle_channel,
        verifier=build_verifier(config.auth),
        host=ws_config.host,
        port=ws_config.port,
        path=ws_config.path,
        max_connections=ws_config.max_connections,
        max_message_bytes=ws_config.max_message_bytes,
    )

    runner: AppRunner | None = None
    if config.http.enabled:
        app = Application()
        summarizer = ConversationSummarizer(factory.client, config.backend.summary_model)
        setup_routes(
            app,
            ApiHandler(
                personas,
                styles,
                topics=config.catalog.popular_topics,
                summarizer=summarizer,
                tracker=tracker,
            ),
        )
        runner = AppRunner(app)
        await runner.setup()

    try:
        await transport.start()
        logger.info("WebSocket transport started", extra={"port": ws_config.port})

        if runner is not None:
            site = TCPSite(runner, config.http.host, config.http_port)
            await site.start()
            logger.info("HTTP server started", extra={"port": config.http_port})

        logger.info(
            "Conversation server ready",
            extra={"personas": len(personas), "styles": len(styles)},
        )
        await asyncio.Event().wait()

    except asyncio.CancelledError:
        logger.info("Server loop cancelled")
    finally:
        logger.info(
            "Shutting down conversation server",
            extra={"active_conversations": tracker.active_count},
        )

        try:
            await asyncio.wait_for(transport.stop(), timeout=config.graceful_shutdown_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Graceful shutdown timed out",
                extra={"timeout_s": config.graceful_shutdown_timeout_s},
            )

        if runner is not None:
            await runner.cleanup()
            logger.info("HTTP server stopped")

        logger.info("Conversation server stopped")


def main() -> None:
    """Entry point for the conversation server."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Two-persona conversation server")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to server config YAML file",
    )
    args = parser.parse_args()

    try:
        asyncio.run(start_server(args.config))
    except KeyboardInterrupt:
        logger.info("Conversation server interrupted")


if __name__ == "__main__":
    main()
