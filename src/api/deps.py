from fastapi import HTTPException, Request, status

from src.adapters.sqlite.repos import SQLiteReadOnlyQuery
from src.app_shell.context import PipelineContext


# --- Context ---
def get_context(request: Request) -> PipelineContext:
    """The pipeline started by the application lifespan."""
    ctx: PipelineContext | None = getattr(request.app.state, "pipeline", None)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline not started",
        )
    return ctx


# --- Read-only SQL ---
def get_readonly_query(request: Request) -> SQLiteReadOnlyQuery:
    return SQLiteReadOnlyQuery(get_context(request).rules.storage.db_path)
