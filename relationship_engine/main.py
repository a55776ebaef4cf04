"""
FastAPI application entry point for the Ontology Relationship Engine.

This module initializes the FastAPI application, configures middleware,
registers API routers, and handles application lifecycle events.

The application provides a RESTful API for:
- Registering projects, datasources and ontology entities
- Syncing datasource schemas and selecting tables
- Discovering, listing and curating relationships between tables
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import time

from .core.config import settings
from .core.logging import get_logger
from .api import ontology, relationships

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events.

    Note:
        The database schema is managed via Alembic migrations.
        Run `alembic upgrade head` before starting the service.
    """
    # Import models so SQLAlchemy registers them on Base.metadata
    from .db import models  # noqa: F401

    logger.info(f"Relationship engine starting (environment={settings.environment})")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Ontology Relationship Engine",
    description="Discovers, scores and reconciles relationships between tables of customer datasources",
    version="0.1.0",
    lifespan=lifespan
)

# TODO: Restrict allow_origins once the frontend origin is configurable
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    HTTP middleware for request/response logging.

    Example log output:
        Method=POST Path=/api/v1/projects/.../relationships/discover Status=200 Duration=45.23ms
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        f"Method={request.method} Path={request.url.path} "
        f"Status={response.status_code} Duration={process_time:.2f}ms"
    )
    return response


app.include_router(ontology.router)        # Projects, datasources, schema, entities
app.include_router(relationships.router)   # Relationship discovery and curation


@app.get("/health")
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        dict: status, service identifier and version
    """
    return {
        "status": "healthy",
        "service": "ontology-relationship-engine",
        "version": "0.1.0"
    }


@app.get("/")
def root():
    """Root endpoint providing API information and navigation."""
    return {
        "message": "Ontology Relationship Engine",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "relationship_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
