"""
api/main.py

FastAPI application factory.  The running ClassificationPipeline (and, in
service mode, the inbound event queue) are injected with set_pipeline() /
set_event_queue() before the app starts serving.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.websockets import WebSocketDisconnect

from .routes import config as config_router
from .routes import connections as connections_router
from .routes import ledger as ledger_router
from .routes import stats as stats_router
from .routes import tabs as tabs_router
from .ws_manager import ws_manager

logger = logging.getLogger(__name__)

_pipeline = None
_event_queue: asyncio.Queue | None = None


def set_pipeline(pipeline) -> None:
    global _pipeline
    _pipeline = pipeline


def get_pipeline():
    if _pipeline is None:
        raise RuntimeError("Pipeline not initialised — call set_pipeline() first")
    return _pipeline


def set_event_queue(queue: asyncio.Queue | None) -> None:
    global _event_queue
    _event_queue = queue


def get_event_queue() -> asyncio.Queue | None:
    return _event_queue


async def _serve_channel(websocket: WebSocket, channel: str) -> None:
    await ws_manager.connect(websocket, channel)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await ws_manager.disconnect(websocket, channel)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        yield
        logger.info("FastAPI shutdown")

    app = FastAPI(
        title="GeoTrack — Connection Risk Classifier",
        version="1.0.0",
        description="Per-domain connection risk scoring with a tamper-evident audit ledger",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        allow_origin_regex=r"^(chrome|moz)-extension://.*$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(connections_router.router, prefix="/api")
    app.include_router(ledger_router.router,      prefix="/api")
    app.include_router(config_router.router,      prefix="/api")
    app.include_router(stats_router.router,       prefix="/api")
    app.include_router(tabs_router.router,        prefix="/api")

    @app.websocket("/ws/observations")
    async def ws_observations(websocket: WebSocket):
        await _serve_channel(websocket, "observations")

    @app.websocket("/ws/alerts")
    async def ws_alerts(websocket: WebSocket):
        await _serve_channel(websocket, "alerts")

    @app.websocket("/ws/ledger")
    async def ws_ledger(websocket: WebSocket):
        await _serve_channel(websocket, "ledger")

    @app.get("/health")
    async def health() -> dict:
        body = {"status": "ok", "ws_connections": ws_manager.all_counts()}
        if _pipeline is not None:
            body["ledger_blocks"] = len(_pipeline.ledger)
            body["domains_tracked"] = _pipeline.tracker.domain_count
        return body

    return app
