"""
SyncEngine component - Sync entry point.

Shell Layer - converts the tagged sync result into an output model.
"""

from __future__ import annotations

from src.core.result import Err

from ._impl import SyncEngine
from .models import SyncOutput


async def run_sync(*, engine: SyncEngine) -> SyncOutput:
    """Run sync_all() once."""
    result = await engine.sync_all()
    if isinstance(result, Err):
        return SyncOutput(success=False, error=result.message, error_kind=result.kind)
    return SyncOutput(results=result.value, success=True)
