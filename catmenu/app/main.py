from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from .api.routes import admin, menu
from .core.log import configure_logging, request_id_ctx
from .core.observability import configure_observability
from .core.scheduling import run_daily
from .core.security import build_nonce_signer
from .core.settings import Settings, get_settings
from .db import Base, build_engine, build_sessionmaker
from .db.migrations import run_migrations
from .services.cache_storage import CacheStorage, build_storage
from .services.category_cache import CategoryCache
from .services.invalidation import bind_invalidation
from .services.taxonomy import SqlCategoryStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    storage: CacheStorage | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if session_factory is None:
        session_factory = build_sessionmaker(build_engine(settings.database_url))

    store = SqlCategoryStore(
        session_factory,
        site_url=settings.SITE_URL,
        category_base=settings.CATEGORY_BASE,
        hide_empty=settings.MLCM_HIDE_EMPTY,
    )
    cache = CategoryCache(
        store,
        storage or build_storage(settings, session_factory),
        excluded_ids=settings.excluded_ids,
        custom_root_id=settings.MLCM_CUSTOM_ROOT,
    )
    subscription = bind_invalidation(store, cache)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.RUN_MIGRATIONS:
            await asyncio.to_thread(run_migrations, settings.database_url)
        else:
            Base.metadata.create_all(bind=session_factory.kw["bind"])

        purge_task: asyncio.Task | None = None
        if settings.CACHE_PURGE_ENABLED:
            purge_task = asyncio.create_task(
                run_daily(cache.purge_expired, name="category cache purge")
            )
        logger.info(
            json.dumps(
                {
                    "event": "startup",
                    "cache_backend": settings.CACHE_BACKEND,
                    "custom_root": settings.MLCM_CUSTOM_ROOT,
                    "excluded": sorted(settings.excluded_ids),
                }
            )
        )
        try:
            yield
        finally:
            if purge_task is not None:
                purge_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await purge_task

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.category_store = store
    app.state.category_cache = cache
    app.state.invalidation = subscription
    app.state.nonce_signer = build_nonce_signer(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-Id"] = request_id
        return response

    configure_observability(app, settings)

    app.include_router(menu.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")

    @app.get("/readyz", include_in_schema=False)
    def readyz():
        return {"status": "ok"}

    @app.get("/livez", include_in_schema=False)
    def livez():
        return Response(status_code=204)

    @app.get("/", include_in_schema=False)
    def root():
        return {"service": settings.app_name, "docs": "/docs"}

    return app


app = create_app()
