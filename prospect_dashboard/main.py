"""
FastAPI application entry point for the Prospect Dashboard API.

Configures logging, CORS and the API routers, and opens the document store
for the lifetime of the application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prospect_dashboard import __version__
from prospect_dashboard.api import api_router
from prospect_dashboard.core.config import get_settings
from prospect_dashboard.core.locks import reset_lock_manager
from prospect_dashboard.core.store import close_store, init_store
from prospect_dashboard.services.classifier import close_classifier

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Open the document store
    On shutdown:
        - Close the classifier HTTP client and the document store
        - Drop the processing lock table
    """
    logger.info("Prospect Dashboard API starting")
    await init_store()
    logger.info(f"Document store ready ({settings.store_backend})")

    yield

    logger.info("Prospect Dashboard API shutting down")
    await close_classifier()
    await close_store()
    reset_lock_manager()


# Create FastAPI application
app = FastAPI(
    title="Prospect Dashboard API",
    version=__version__,
    description=(
        "Backend of the prospect dashboard: daily conversation ingestion, "
        "prospect classification runs, household-level counts, OEC sales "
        "and P&L views."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "Prospect Dashboard API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prospect_dashboard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
