from pathlib import Path
from contextlib import asynccontextmanager

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from chainstream.api.routes import entities, health, pipeline, rpc, search, stats, stream
from chainstream.core.config import settings
from chainstream.core.logging import get_logger
from chainstream.services.runtime import build_runtime


log = get_logger("app")


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Log environment mode
    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    # Startup
    if settings.RUN_MIGRATIONS:
        try:
            run_migrations()
        except Exception:
            log.exception("Failed to apply migrations on startup")
            raise

    runtime = build_runtime()
    await runtime.ensure_collections()

    if settings.STREAM_ENABLED:
        log.info("Starting block stream and pipeline workers...")
    else:
        log.info("Block stream is disabled (STREAM_ENABLED=false), workers only")
    runtime.start(stream=settings.STREAM_ENABLED)
    app.state.runtime = runtime

    yield

    # Shutdown
    log.info("Shutting down services...")
    app.state.runtime = None
    await runtime.stop()
    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="Chainstream",
    description="Ethereum block ingestion and enrichment pipeline",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    # Debug mode only in development
    debug=settings.debug_enabled,
)


app.include_router(entities.router)
app.include_router(health.router)
app.include_router(pipeline.router)
app.include_router(rpc.router)
app.include_router(search.router)
app.include_router(stats.router)
app.include_router(stream.router)
