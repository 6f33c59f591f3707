"""Liveness endpoint for uptime probes."""
from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .config import FleetSettings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Node Fleet Health", version="0.1.0")

    @app.get("/health", response_class=PlainTextResponse)
    def read_health() -> str:
        return "OK"

    return app


def run_health_server(app: FastAPI, settings: FleetSettings) -> None:
    """Run the FastAPI app using uvicorn."""
    config = uvicorn.Config(
        app,
        host=settings.health_host,
        port=settings.health_port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = False
    logger.info("Health endpoint listening on http://%s:%s/health", settings.health_host, settings.health_port)
    server.run()


__all__ = ["create_app", "run_health_server"]
