"""
Gallery Live API - Main Application Entry Point.

This module initializes and configures the FastAPI application for the Gallery
Live API. It sets up logging, the database behind the realtime store, the image
cache, the local identity, middleware and routes.

The application lets a user browse a remote image source, react to images with
emoji, comment on them, and follow a live feed of everyone's activity. Open
views receive full snapshots over WebSockets whenever the data they show
changes.

Key Responsibilities:
- Configure and launch the FastAPI application.
- Set up middleware for correlation, error handling, performance and request
  validation.
- Initialize the database, the request cache, the local identity and the
  service singletons in the application lifespan.
- Mount API routers (health, monitoring, gallery, live views).
- Close every live session and release the database on shutdown.

Architecture:
The application follows a standard FastAPI structure, with a clear separation of
concerns between the main application file, routers, core services, and providers.
"""

import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api.dependencies import configure_services, get_connection_service, get_store
from api.endpoints import router, websocket_router
from api.health_router import health_router, monitoring_router
from core.cache import init_cache, MemoryCacheBackend
from core.database import (
    create_db_and_tables,
    dispose_engine,
    get_session_factory,
    init_engine,
)
from core.logging_config import setup_logging, get_logger
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    RequestValidationMiddleware,
    register_exception_handlers,
)
from providers.store_provider import SQLRealtimeStore
from services.identity_service import FileLocalStorage, init_identity_context

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger = get_logger("api.startup")

    init_engine()
    await create_db_and_tables()
    logger.info("Database initialized successfully")

    cache_ttl = float(os.getenv("IMAGE_CACHE_TTL", "300"))
    init_cache(MemoryCacheBackend(max_size=1000, default_ttl=cache_ttl))
    logger.info("Cache system initialized")

    identity = await init_identity_context(FileLocalStorage()).get_or_create()
    logger.info(f"Local identity ready: {identity.username}")

    configure_services(SQLRealtimeStore(get_session_factory()))
    logger.info("Gallery services initialized")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down Gallery Live API")
    stopped = await get_connection_service().stop_all_sessions()
    logger.info(f"Closed {stopped} live sessions")
    get_store().close()
    await dispose_engine()
    logger.info("Cleanup completed")


app = FastAPI(
    title="Gallery Live API",
    description="Image gallery with live emoji reactions, comments and activity feed",
    version="1.0.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first
app.add_middleware(PerformanceMiddleware)
app.add_middleware(RequestValidationMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(CorrelationMiddleware)

register_exception_handlers(app)

# Health routers first
app.include_router(health_router)
app.include_router(monitoring_router)

app.include_router(websocket_router)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info",
    )
