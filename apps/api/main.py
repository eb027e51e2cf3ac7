"""
Content Catalog - FastAPI Backend
Main application entry point with health check and API routing.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    programs,
    categories,
    languages,
)
from routers.envelope import error_envelope
from services.cache import close_cache_store
from services.search import wait_for_pending_search_logs

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Content Catalog API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    yield
    # Shutdown
    await wait_for_pending_search_logs()
    await close_cache_store()
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Content Catalog API",
    description="Curate programs by category and language and serve them to discovery clients",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error in the response envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.detail),
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(programs.router, prefix="/programs", tags=["Programs"])
app.include_router(categories.router, prefix="/categories", tags=["Categories"])
app.include_router(languages.router, prefix="/languages", tags=["Languages"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Content Catalog API",
        "version": "0.1.0",
        "status": "running"
    }
