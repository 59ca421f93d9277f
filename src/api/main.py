import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from src.app_shell.config import configure_logging, load_app_rules, validate_runtime
from src.app_shell.context import PipelineContext

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build and start the pipeline on startup, close it on shutdown."""
    # Load rules and validate on startup (fail-fast)
    rules = load_app_rules()
    configure_logging(rules.logging.level)
    validate_runtime(rules)

    ctx = PipelineContext.create(rules)
    await ctx.start()
    app.state.pipeline = ctx
    logger.info("Query API ready (db=%s)", rules.storage.db_path)

    yield

    await ctx.close()
    app.state.pipeline = None


app = FastAPI(
    title="Telemetry Medallion Query API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import query, sync_status  # noqa: E402

app.include_router(query.router, prefix="/api/query", tags=["Query"])
app.include_router(sync_status.router, prefix="/api/sync", tags=["Sync"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "query-api"}
