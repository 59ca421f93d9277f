from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.deps import get_context
from src.app_shell.context import PipelineContext

router = APIRouter()


class SyncStatusResponse(BaseModel):
    is_syncing: bool
    last_sync_timestamp: int
    queued: list[str]
    is_authenticated: bool
    auto_sync_enabled: bool
    session_state: str
    team_id: str | None = None


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(ctx: PipelineContext = Depends(get_context)) -> SyncStatusResponse:
    sync = ctx.sync_engine.get_status()
    session = ctx.session.snapshot()
    return SyncStatusResponse(
        is_syncing=sync.is_syncing,
        last_sync_timestamp=sync.last_sync_timestamp,
        queued=sync.queued,
        is_authenticated=sync.is_authenticated,
        auto_sync_enabled=sync.auto_sync_enabled,
        session_state=session.state.value,
        team_id=session.team_id,
    )
