"""
FastAPI backend - Realtime Hub for SkyRelay.

Serves:
- WebSocket endpoint for shared-poll flight broadcasts
- Service statistics and auth health
- Prometheus metrics endpoint
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, WebSocket, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from backend.broadcast import BroadcastService, CredentialProvider, FeedClient, POLL_INTERVAL_SECONDS
from backend.metrics import get_metrics, HTTP_REQUESTS
from backend.websocket import ConnectionManager
from ingestion.auth import TokenProvider
from ingestion.opensky_client import OpenSkyClient

logger = logging.getLogger(__name__)

# Configuration
BACKEND_HOST = os.getenv("BACKEND_HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "8000"))


def create_app(
    token_provider: Optional[CredentialProvider] = None,
    feed_client: Optional[FeedClient] = None,
    poll_interval: Optional[float] = None,
) -> FastAPI:
    """
    Application factory.

    The broadcast service is built in the lifespan so its poll timer
    lives on the server's event loop. Collaborators may be injected for
    testing.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 50)
        logger.info("SkyRelay Backend - Starting")
        logger.info("=" * 50)

        tokens = token_provider or TokenProvider()
        service = BroadcastService(
            tokens,
            feed_client or OpenSkyClient(),
            poll_interval=poll_interval or POLL_INTERVAL_SECONDS,
        )
        app.state.token_provider = tokens
        app.state.broadcast_service = service
        app.state.connection_manager = ConnectionManager(service)
        logger.info("Broadcast service initialized")

        yield

        logger.info("Shutting down...")
        await service.shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="SkyRelay Backend API",
        description="Shared-poll realtime hub for live flight tracking",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Middleware to track HTTP requests."""
        response = await call_next(request)
        HTTP_REQUESTS.labels(
            method=request.method,
            path=request.url.path,
            status=response.status_code
        ).inc()
        return response

    @app.get("/")
    async def root():
        return {
            "service": "SkyRelay Backend",
            "version": "1.0.0",
            "endpoints": {
                "websocket": "/ws/flights",
                "stats": "/stats",
                "health": "/health",
                "auth_health": "/auth/health",
                "metrics": "/metrics"
            }
        }

    @app.get("/health")
    async def health(request: Request):
        service = getattr(request.app.state, "broadcast_service", None)
        if not service:
            return JSONResponse(status_code=503, content={"error": "Service not ready"})
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connections": len(request.app.state.connection_manager.active_connections),
        }

    @app.get("/stats")
    async def stats(request: Request):
        """Broadcast service statistics."""
        service = getattr(request.app.state, "broadcast_service", None)
        if not service:
            return JSONResponse(status_code=503, content={"error": "Service not ready"})
        return service.stats()

    @app.get("/auth/health")
    async def auth_health(request: Request):
        """OpenSky token status."""
        tokens = getattr(request.app.state, "token_provider", None)
        info = tokens.token_info() if hasattr(tokens, "token_info") else {"has_token": False, "is_expired": True}
        return {
            "success": info["has_token"] and not info["is_expired"],
            "token_status": info,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.websocket("/ws/flights")
    async def websocket_flights(websocket: WebSocket):
        """
        WebSocket endpoint for real-time flight updates.

        Protocol:
        - On connect: the latest cached batch, if any
        - After every fetch: {"type": "update", "flights": [...], "timestamp": ..., "totalFlights": N, "bounds": {...}|null}
        - On fetch failure: {"type": "error", "error": "...", "message": "...", "timestamp": ...}
        - Client -> server: {"type": "set_bounds", "south": .., "west": .., "north": .., "east": ..}
        """
        manager = getattr(websocket.app.state, "connection_manager", None)
        if not manager:
            await websocket.close(code=1013, reason="Service not ready")
            return

        await manager.handle_client(websocket)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return await get_metrics()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(
        "backend.main:app",
        host=BACKEND_HOST,
        port=BACKEND_PORT,
        log_level="info"
    )
