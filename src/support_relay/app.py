from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from support_relay.api.deps import build_verifier
from support_relay.api.middleware.correlation_id import CorrelationIdMiddleware
from support_relay.api.v1.routers import admin_conversations, health, ws
from support_relay.application.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from support_relay.application.ports.auth import TokenVerifier
from support_relay.application.ports.clock import Clock
from support_relay.application.uow import UoWFactory
from support_relay.config import Settings, settings as default_settings
from support_relay.infrastructure.bus.redis_pubsub import (
    RedisFanout,
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
    deliver_locally,
)
from support_relay.infrastructure.db.uow import session_uow
from support_relay.infrastructure.ws.registry import ConnectionRegistry
from support_relay.services.auto_reply_scheduler import AutoReplyScheduler
from support_relay.services.auto_responder import AutoResponder, StoreContext
from support_relay.services.chat_router import ChatEventRouter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    cfg: Settings = app.state.settings
    chat_router: ChatEventRouter = app.state.chat_router

    app.state.redis = aioredis.from_url(cfg.REDIS_URL, decode_responses=True)
    logger.info("Redis connection pool created")

    subscriber: RedisPubSubSubscriber | None = None
    if cfg.FANOUT_BACKEND == "redis":
        chat_router.attach_fanout(
            RedisFanout(RedisPubSubPublisher(app.state.redis), cfg.REDIS_PUBSUB_CHANNEL),
        )
        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            cfg.REDIS_PUBSUB_CHANNEL,
            partial(deliver_locally, app.state.registry),
        )
        await subscriber.start()

    yield

    if subscriber is not None:
        await subscriber.stop()
    await chat_router.scheduler.shutdown()
    app.state.registry.close()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app(
    *,
    app_settings: Settings | None = None,
    uow_factory: UoWFactory | None = None,
    verifier: TokenVerifier | None = None,
    scheduler: AutoReplyScheduler | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    cfg = app_settings or default_settings
    app = FastAPI(
        title="Support Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    registry = ConnectionRegistry()
    responder = AutoResponder(StoreContext(cfg.STORE_NAME, cfg.STORE_HOTLINE, cfg.STORE_ZALO))
    app.state.settings = cfg
    app.state.registry = registry
    app.state.uow_factory = uow_factory or session_uow
    app.state.verifier = verifier or build_verifier()
    app.state.chat_router = ChatEventRouter(
        registry=registry,
        uow_factory=app.state.uow_factory,
        responder=responder,
        scheduler=scheduler or AutoReplyScheduler(cfg.AUTO_REPLY_MIN_DELAY, cfg.AUTO_REPLY_MAX_DELAY),
        clock=clock,
        bot_name=cfg.AUTOMATED_SENDER_NAME,
        stats_timezone=cfg.STATS_TIMEZONE,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(admin_conversations.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})
