"""
Query API - Read-only access to silver records and gold rollups.

Every endpoint reads through repositories or a mode=ro connection; nothing
here writes to the database.
"""

import logging
import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.adapters.sqlite.repos import SQLiteReadOnlyQuery
from src.api.deps import get_context, get_readonly_query
from src.app_shell.context import PipelineContext
from src.components.gold import HourlyStatsInput, run_hourly_stats
from src.core.entities import CanonicalRecord, DailyAnalytics
from src.core.ports.db import RecordFilter

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Request/Response Models ---


class StatItem(BaseModel):
    """One rollup bucket."""

    key: str | int
    count: int
    total_bytes: int
    avg_duration_ms: float
    error_count: int


class StatsResponse(BaseModel):
    items: list[StatItem]


class SqlRequest(BaseModel):
    """Single SELECT with positional parameters."""

    sql: str = Field(min_length=1)
    params: list[Any] = Field(default_factory=list)


class SqlResponse(BaseModel):
    rows: list[dict[str, Any]]
    row_count: int


def _stat_items(stats: list[Any]) -> StatsResponse:
    return StatsResponse(
        items=[
            StatItem(
                key=s.key,
                count=s.count,
                total_bytes=s.total_bytes,
                avg_duration_ms=s.avg_duration_ms,
                error_count=s.error_count,
            )
            for s in stats
        ]
    )


# --- Silver ---


@router.get("/requests", response_model=list[CanonicalRecord])
def list_requests(
    domain: str | None = None,
    page_url: str | None = None,
    type: str | None = None,
    start: int | None = Query(None, description="Epoch ms, inclusive"),
    end: int | None = Query(None, description="Epoch ms, exclusive"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    ctx: PipelineContext = Depends(get_context),
) -> list[CanonicalRecord]:
    """Canonical request records, newest first."""
    flt = RecordFilter(
        domain=domain,
        page_url=page_url,
        type=type,
        start_ms=start,
        end_ms=end,
        limit=limit,
        offset=offset,
    )
    return ctx.canonical_repo.query(flt)


# --- Gold ---


@router.get("/domains", response_model=StatsResponse)
def domain_stats(ctx: PipelineContext = Depends(get_context)) -> StatsResponse:
    return _stat_items(ctx.aggregator.get_domain_stats())


@router.get("/resources", response_model=StatsResponse)
def resource_stats(ctx: PipelineContext = Depends(get_context)) -> StatsResponse:
    return _stat_items(ctx.aggregator.get_resource_stats())


@router.get("/hourly", response_model=StatsResponse)
def hourly_stats(
    start: int = Query(..., description="Epoch ms, inclusive"),
    end: int = Query(..., description="Epoch ms, exclusive"),
    ctx: PipelineContext = Depends(get_context),
) -> StatsResponse:
    out = run_hourly_stats(HourlyStatsInput(start_ms=start, end_ms=end), aggregator=ctx.aggregator)
    if not out.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=out.errors[0].message)
    return _stat_items(out.stats)


@router.get("/daily", response_model=list[DailyAnalytics])
def daily_analytics(
    start: str | None = Query(None, description="First date, YYYY-MM-DD"),
    end: str | None = Query(None, description="Last date, YYYY-MM-DD"),
    ctx: PipelineContext = Depends(get_context),
) -> list[DailyAnalytics]:
    return ctx.aggregator.get_daily(start, end)


# --- Ad-hoc SQL ---


@router.post("/sql", response_model=SqlResponse)
def run_sql(
    body: SqlRequest,
    query: SQLiteReadOnlyQuery = Depends(get_readonly_query),
) -> SqlResponse:
    """Run one read-only SELECT."""
    try:
        rows = query.select(body.sql, body.params)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except sqlite3.Error as e:
        logger.warning("Ad-hoc query failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return SqlResponse(rows=rows, row_count=len(rows))
