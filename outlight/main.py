"""FastAPI application entry point."""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from outlight.routes import runs
from outlight.services.job_client import default_providers
from outlight.services.registry import RunRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Outlight",
    description="Batch image and video generation against a reference image",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(runs.router)


def run_migrations():
    """Create the products table unless it already exists."""
    import sqlalchemy

    from outlight.database import engine

    if sqlalchemy.inspect(engine).has_table("products"):
        logger.info("Database tables already exist, skipping migrations")
        return

    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


@app.on_event("startup")
async def startup_event():
    """Prepare the product store and the run registry."""
    logger.info("Starting application...")

    try:
        run_migrations()
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")

    app.state.registry = RunRegistry()
    logger.info("Run registry ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel all runs and wait for their workers to exit."""
    logger.info("Shutting down application...")

    registry = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.shutdown()


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
def root():
    """Service info."""
    return {"name": "Outlight", "version": "0.1.0", "providers": sorted(default_providers())}
