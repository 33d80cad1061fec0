"""
Download Entitlements API - Main Application.

FastAPI application with CORS enabled for storefront communication.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.dependencies import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Download Entitlements API",
    description="Records paid purchases and enforces per-product download limits",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Storefront is served from another origin; downloads are opened directly.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status, version and configured store backend.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "download-entitlements-api",
        "store_backend": get_settings().store_backend,
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Download Entitlements API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import downloads, purchases, webhooks

app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(purchases.router, prefix="/api/v1", tags=["Entitlements"])
app.include_router(downloads.router, prefix="/api/v1", tags=["Downloads"])
