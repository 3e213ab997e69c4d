"""
Liveness endpoint.

Serves GET /health with uvicorn inside the controller's event loop. The
answer reflects process liveness only, not the state of the last sync.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the FastAPI app exposing /health."""
    app = FastAPI(
        title="jms-pod-sync",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check():
        """Health check endpoint."""
        return "ok"

    return app


class HealthServer:
    """Runs the liveness app until stopped."""

    def __init__(self, host: str = "0.0.0.0", port: int = 8080, log_level: str = "info"):
        self.host = host
        self.port = port
        self.log_level = log_level.lower()
        self.app = create_app()
        self.server: Optional[uvicorn.Server] = None

    async def start(self) -> None:
        """Start the HTTP server."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self.log_level,
            access_log=False,
        )
        self.server = uvicorn.Server(config)

        logger.info(f"Starting health endpoint on {self.host}:{self.port}")
        await self.server.serve()

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        logger.info("Stopping health endpoint")
        if self.server:
            self.server.should_exit = True

    def is_running(self) -> bool:
        return bool(self.server and self.server.started)
