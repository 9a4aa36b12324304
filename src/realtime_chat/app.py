from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from realtime_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from realtime_chat.api.middleware.metrics import RequestTimingMiddleware
from realtime_chat.api.v1.routers import chats, health, messages, ws
from realtime_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)
from realtime_chat.config import settings
from realtime_chat.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from realtime_chat.infrastructure.db.session import AsyncSessionLocal
from realtime_chat.infrastructure.db.storage import SqlAlchemyChatStorage
from realtime_chat.infrastructure.ws.hub import ChatHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    if not settings.RELAY_ENABLED:
        logger.info("Pub/Sub relay disabled; events stay on this instance")
        yield
        return

    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        app.state.hub.relay,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber

    yield

    await subscriber.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app(hub: ChatHub | None = None) -> FastAPI:
    app = FastAPI(
        title="Realtime Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = hub or ChatHub.from_settings(
        SqlAlchemyChatStorage(AsyncSessionLocal, origin=settings.INSTANCE_ID),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chats.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


_STATUS_BY_ERROR: list[tuple[type[AppError], int]] = [
    (UnauthorizedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ValidationError, 422),
    (PersistenceError, 503),
]


def _register_exception_handlers(app: FastAPI) -> None:
    for exc_type, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(exc_type, _error_handler(status_code))


def _error_handler(status_code: int):  # noqa: ANN202
    async def _handle(_req: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.detail, "code": exc.code},
        )

    return _handle
