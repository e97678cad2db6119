"""FastAPI application factory.

Creates and configures the FastAPI application with all routers
and exception handlers.

API Versioning:
    All API endpoints are versioned under /api/v1/ prefix.
    The health check endpoint remains unversioned at /health.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from payeebatch.infrastructure.persistence.sqlalchemy import create_tables
from payeebatch.presentation.api.dependencies import (
    ServiceContainer,
    get_container,
    get_engine,
)
from payeebatch.presentation.api.exception_handlers import setup_exception_handlers
from payeebatch.presentation.api.routers import jobs_router, maintenance_router
from payeebatch_config.settings import Settings, get_settings


@lru_cache(maxsize=1)
def _configure_logging() -> None:
    """Configure application logging.

    - Console output with timestamps and module names
    - Configurable log level for payeebatch modules (from settings)
    - WARNING level for noisy third-party libraries
    """
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    logging.getLogger("payeebatch").setLevel(log_level)

    # Quiet down noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
API_V1_PREFIX = "/api/v1"

OPENAPI_TAGS = [
    {
        "name": "Jobs",
        "description": """Batch payee classification jobs.

**Lifecycle:**
`validating` → `in_progress` → `finalizing` → `completed`, with
`cancelling`, `cancelled`, `failed` and `expired` as exits.

**Flow:**
1. Upload rows; unique payees are submitted as one batch
2. Jobs are polled in the background (or pushed via `status-events`)
3. On completion, results are reconciled and expanded to every row
4. Download the rows as CSV or XLSX
""",
    },
    {
        "name": "Maintenance",
        "description": """Recovery and cleanup.

- `orphans`: completed jobs without stored results
- `phantoms`: jobs the provider no longer knows
- `cleanup`: age-based working-set cleanup and auto-cancel
""",
    },
    {
        "name": "Health",
        "description": "Service health monitoring endpoints.",
    },
]


async def _run_maintenance(container: ServiceContainer, interval: float) -> None:
    """Periodic cleanup; failures are logged and the loop continues."""
    while True:
        await asyncio.sleep(interval)
        try:
            await container.recovery_service.cleanup_stale_jobs()
            await container.persistence.flush_pending()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Maintenance run failed")


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting payeebatch API v%s...", API_VERSION)

    engine = get_engine()
    await create_tables(engine)

    container = get_container()
    await container.job_service.resume()
    await container.sync_engine.start()
    maintenance = asyncio.create_task(
        _run_maintenance(container, settings.maintenance_interval_seconds),
        name="maintenance",
    )
    yield

    logger.info("Shutting down payeebatch API...")
    maintenance.cancel()
    with suppress(asyncio.CancelledError):
        await maintenance
    await container.sync_engine.stop()
    await engine.dispose()
    logger.info("Database connections closed")


def create_v1_router() -> APIRouter:
    """Create the v1 API router with all endpoints."""
    v1_router = APIRouter()
    v1_router.include_router(jobs_router, prefix="/jobs", tags=["Jobs"])
    v1_router.include_router(
        maintenance_router,
        prefix="/maintenance",
        tags=["Maintenance"],
    )
    return v1_router


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    settings
        Optional settings override for testing.

    Returns
    -------
    Configured FastAPI application instance.
    """
    # Configure logging on first app creation (not on module import)
    _configure_logging()

    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Batch **payee classification** (business vs. individual, "
            "SIC codes) with row-exact result reconciliation."
        ),
        version=API_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    setup_exception_handlers(app)

    app.include_router(create_v1_router(), prefix=API_V1_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        """Health check endpoint.

        Unversioned for load balancer/monitoring compatibility.
        """
        return {
            "status": "healthy",
            "version": API_VERSION,
            "api_versions": ["v1"],
        }

    return app


# Application instance for uvicorn
app = create_app()
