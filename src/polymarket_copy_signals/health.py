"""Liveness endpoint served next to the tracker loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], dict[str, Any]]


def create_health_app(status_provider: StatusProvider | None = None) -> FastAPI:
    app = FastAPI(title="Polymarket Copy Signals", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "Polymarket tracker running\n"

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Basic health check - for liveness probes"""
        payload: dict[str, Any] = {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}
        if status_provider is not None:
            payload.update(status_provider())
        return payload

    return app


class HealthServer:
    """Runs the health app on uvicorn as a background task."""

    def __init__(
        self,
        port: int,
        *,
        host: str = "0.0.0.0",
        status_provider: StatusProvider | None = None,
    ) -> None:
        config = uvicorn.Config(
            create_health_app(status_provider),
            host=host,
            port=port,
            log_level="warning",
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._task: asyncio.Task[None] | None = None
        self.port = port

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._serve())
            logger.info("Tracker listening on port %d", self.port)

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except SystemExit:
            # uvicorn exits when the port cannot be bound; the tracker keeps running.
            logger.error("Health server failed to start on port %d", self.port)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
