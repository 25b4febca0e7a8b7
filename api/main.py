"""
Spotter Lead Platform API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.dependencies import get_container
from api.routers import leads, updates, users
from config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Spotter Lead Platform API %s", __version__)
    yield
    # Only drain the dispatcher if a container was actually built.
    if get_container.cache_info().currsize:
        get_container().notifications.shutdown(wait=True)
    logger.info("API stopped")


# Create FastAPI application
app = FastAPI(
    title="Spotter Lead Platform API",
    description="REST API for submitting, assigning and closing real estate leads",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "spotter-lead-platform-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Spotter Lead Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


app.include_router(leads.router, prefix="/api", tags=["Leads"])
app.include_router(updates.router, prefix="/api", tags=["Updates"])
app.include_router(users.router, prefix="/api", tags=["Users"])
