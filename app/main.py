"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the API routers.
"""
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging_config import configure_logging

# Import routers
from .api.routers import imports
from .api.dependencies import ImporterRegistry, get_importer_registry, importer_registry

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    yield  # Application runs here

    # Shutdown: soft-stop active imports and release the processor client.
    await importer_registry.shutdown()


# Initialize FastAPI application
app = FastAPI(
    title="Batch Import API",
    version="1.0.0",
    description="Drives large CSV imports through a size-limited remote processor in pausable batches",
    lifespan=lifespan
)

# Configure CORS middleware
# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
# Strip whitespace from origins
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Batch Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check(registry: ImporterRegistry = Depends(get_importer_registry)):
    """Health check endpoint for deployment monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "batch-import-api",
        "active_imports": len(registry.active_runs()),
    }
