"""HTTP endpoints served next to the websocket server.

Routes:
    GET  /health                    status, uptime and live conversation count
    GET  /api/personas              visible personas
    GET  /api/styles                conversation styles
    GET  /api/topics                suggested topics
    POST /api/conversation/summary  one-sentence summary of a transcript
"""

import logging
import time

from aiohttp import web
from pydantic import ValidationError

from src.palooza.handler import ConversationTracker
from src.palooza.registry import PersonaRegistry, StyleRegistry
from src.palooza.summary import ConversationSummarizer, SummaryRequest

logger = logging.getLogger(__name__)


class ApiHandler:
    """Request handlers for the side HTTP app."""

    def __init__(
        self,
        personas: PersonaRegistry,
        styles: StyleRegistry,
        topics: list[str] | None = None,
        summarizer: ConversationSummarizer | None = None,
        tracker: ConversationTracker | None = None,
    ) -> None:
        """Initialize API handler.

        Args:
            personas: Persona catalog
            styles: Style catalog
            topics: Suggested topics
            summarizer: Summary backend (summary endpoint disabled when None)
            tracker: Live conversation tracker (for health)
        """
        self.personas = personas
        self.styles = styles
        self.topics = list(topics or [])
        self.summarizer = summarizer
        self.tracker = tracker
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Response format:
        {
            "status": "healthy",
            "uptime_seconds": float,
            "active_conversations": int
        }
        """
        active = self.tracker.active_count if self.tracker is not None else 0
        return web.json_response(
            {
                "status": "healthy",
                "uptime_seconds": time.time() - self.start_time,
                "active_conversations": active,
            }
        )

    async def list_personas(self, request: web.Request) -> web.Response:
        personas = [persona.model_dump() for persona in self.personas.list_visible()]
        return web.json_response({"personas": personas})

    async def list_styles(self, request: web.Request) -> web.Response:
        styles = [style.model_dump() for style in self.styles.list_all()]
        return web.json_response({"styles": styles})

    async def list_topics(self, request: web.Request) -> web.Response:
        return web.json_response({"topics": self.topics})

    async def summarize(self, request: web.Request) -> web.Response:
        """Summarize a finished conversation.

        Returns ``{"summary": str}``, or ``{"error": str}`` when the request is
        malformed or the model call fails.
        """
        try:
            body = SummaryRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            logger.info("Invalid summary request", extra={"error": str(e)})
            return web.json_response({"error": "Invalid parameters"}, status=400)

        if self.summarizer is None:
            return web.json_response({"error": "Summaries are not configured"}, status=503)

        try:
            summary = await self.summarizer.summarize(body)
        except Exception as e:
            logger.error("Summary request failed", extra={"error": str(e)})
            return web.json_response({"error": str(e)})

        return web.json_response({"summary": summary})


def setup_routes(app: web.Application, handler: ApiHandler) -> None:
    """Set up API routes on application.

    Args:
        app: aiohttp Application instance
        handler: Configured request handler
    """
    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/api/personas", handler.list_personas)
    app.router.add_get("/api/styles", handler.list_styles)
    app.router.add_get("/api/topics", handler.list_topics)
    app.router.add_post("/api/conversation/summary", handler.summarize)

    logger.info(
        "HTTP endpoints configured: "
        "/health, /api/personas, /api/styles, /api/topics, /api/conversation/summary"
    )
