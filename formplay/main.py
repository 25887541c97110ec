"""
Main application entry point.

This module initializes the FastAPI application and includes all routers.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from formplay.core.config import settings
from formplay.core.exceptions import FormPlayError, formplay_error_handler, request_validation_handler
from formplay.core.logging import logger
from formplay.core.middleware import RequestLogMiddleware, SecurityHeadersMiddleware
from formplay.db.init_db import create_tables, seed_users
from formplay.db.session import AsyncSessionLocal, engine
from formplay.routers.auth import router as auth_router
from formplay.routers.health import router as health_router
from formplay.routers.reports import router as reports_router
from formplay.routers.templates import router as templates_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Actions to run on application startup and shutdown."""
    logger.info(f"Starting {settings.api.title}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database URL: {settings.database.url[:20]}...")

    await create_tables(engine)
    if settings.seed_users:
        async with AsyncSessionLocal() as db:
            await seed_users(db, settings.seed_users)

    yield

    logger.info(f"Shutting down {settings.api.title}")
    await engine.dispose()


app = FastAPI(
    title=settings.api.title,
    description=settings.api.description,
    version=settings.api.version,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_exception_handler(FormPlayError, formplay_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_urls,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)

prefix = settings.api.prefix
app.include_router(health_router, prefix=f"{prefix}/health", tags=["health"])
app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["authentication"])
app.include_router(reports_router, prefix=f"{prefix}/reports", tags=["reports"])
app.include_router(templates_router, prefix=f"{prefix}/templates", tags=["templates"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.api.title,
        "version": settings.api.version,
        "docs": "/docs",
    }
