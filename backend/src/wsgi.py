import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from orm.db import init_db, close_db
from routes.admin import router as admin_router
from routes.marketplace import router as marketplace_router
from routes.telemetry import router as telemetry_router
from settings import settings
from utils.attribution import AttributionDispatcher, AttributionRecorder
from utils.redis import ReportCache
from utils.store import build_event_store
from utils.telemetry import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.app.log_level)
    await init_db(generate_schemas=False)

    app.state.store = build_event_store(settings.analytics.event_store)
    recorder = AttributionRecorder(app.state.store, timeout_sec=settings.attribution.timeout_sec)
    app.state.dispatcher = AttributionDispatcher(
        recorder,
        workers=settings.attribution.workers,
        queue_size=settings.attribution.queue_size,
        max_attempts=settings.attribution.max_attempts,
        backoff_sec=settings.attribution.backoff_sec,
    )
    await app.state.dispatcher.start()

    app.state.report_cache = None
    if settings.redis.enabled:
        app.state.report_cache = ReportCache(
            url=settings.redis.url,
            prefix=settings.redis.cache_prefix,
            ttl_sec=settings.analytics.cache_ttl_sec,
        )
        await app.state.report_cache.start()
    logger.info("marketplace api started (event store: %s)", settings.analytics.event_store)
    try:
        yield
    finally:
        await app.state.dispatcher.stop()
        if app.state.report_cache:
            await app.state.report_cache.stop()
        await close_db()


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Marketplace API",
        version="1.0.0",
        routes=app.routes,
        description="Marketplace feed, promoted listing attribution and analytics",
    )
    openapi_schema["servers"] = [{"url": "/api"}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app = FastAPI(
    title="Marketplace API",
    root_path="/api",
    lifespan=lifespan,
    **(
        {
            "docs_url": "/docs",
            "redoc_url": "/redoc",
            "openapi_url": "/openapi.json"
        }
        if settings.app.debug else {}
    )
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app.url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.openapi = custom_openapi
app.include_router(marketplace_router)
app.include_router(telemetry_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
