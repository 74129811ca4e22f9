"""
FastAPI application factory for the scorewire API service.

Creates the app with:
- REST routes (scores)
- WebSocket endpoint backed by the broadcast hub
- Middleware stack
- Health check endpoints
- Lifespan management (startup/shutdown)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Dict, Optional, Union

from fastapi import FastAPI, Query, WebSocket
from sqlalchemy import text

from shared.config import get_settings
from shared.storage import SqlScoreStorage
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_db, get_hub, get_redis, init_dependencies
from api.middleware import setup_middleware
from api.routes.scores import router as scores_router
from api.ws.hub import BroadcastHub
from ingest.cache import ScoresCache

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 5
_CONNECT_RETRY_BASE_DELAY_S = 1.0


async def _connect_with_retry(connect_fn: Callable[[], Awaitable[None]], name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without DB/Redis."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Connects Redis/Postgres, starts the broadcast hub and its Redis bridge,
    and tears everything down on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await _connect_with_retry(redis.connect, "Redis")
    await _connect_with_retry(db.connect, "Database")

    storage = SqlScoreStorage(db)
    hub = BroadcastHub(storage, redis, settings)
    init_dependencies(storage, ScoresCache(redis, settings), hub, redis=redis, db=db)
    await hub.start()

    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    await hub.stop()
    await db.disconnect()
    await redis.disconnect()
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without DB/Redis."""
    app = FastAPI(
        title="scorewire API",
        description="Real-time scores and news fan-out",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
    )

    setup_middleware(app)
    app.include_router(scores_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool]]:
        """Readiness probe: checks downstream dependencies."""
        redis = get_redis()
        db = get_db()
        redis_ok = False
        db_ok = False

        if redis is not None:
            try:
                await redis.client.ping()
                redis_ok = True
            except Exception as exc:
                logger.warning("readiness_redis_failed", error=str(exc))

        if db is not None:
            try:
                async with db.read_session() as session:
                    await session.execute(text("SELECT 1"))
                    db_ok = True
            except Exception as exc:
                logger.warning("readiness_db_failed", error=str(exc))

        return {
            "status": "ok" if (redis_ok and db_ok) else "degraded",
            "redis": redis_ok,
            "database": db_ok,
        }

    @app.websocket("/v1/ws")
    async def websocket_endpoint(ws: WebSocket, user_id: Optional[str] = Query(default=None, alias="userId")) -> None:
        """
        WebSocket endpoint for score, status and news updates.

        Client messages:
        - {"type": "subscribe", "teamId": "NBA_LAL"} / {"type": "subscribe", "sport": "NBA"}
        - {"type": "unsubscribe", "teamId": "NBA_LAL"}
        - {"type": "subscribe-user-teams", "sport": "NBA"} (needs ?userId=)
        - {"type": "unsubscribe-user-teams"}
        - {"type": "ping"}
        """
        hub = get_hub()
        if hub is None:
            await ws.close(code=1013, reason="service_unavailable")
            return
        await hub.handle_connection(ws, user_id)

    return app


# For running with uvicorn directly
app = create_app()
