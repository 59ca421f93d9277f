"""
Bronze component - Raw event intake.

Shell Layer - converts input models to RawStore calls and storage
validation failures to output errors.
"""

from __future__ import annotations

from src.core.events import BronzeInserted, EventChannel

from ._impl import RawStore
from .models import AppendInput, AppendOutput, BronzeValidationError
from .ports import RawEventRepoPort, TimePort


async def run_append(
    inp: AppendInput,
    *,
    repo: RawEventRepoPort,
    time_port: TimePort,
    inserted: EventChannel[BronzeInserted] | None = None,
) -> AppendOutput:
    """
    Append one raw event.

    Args:
        inp: Category, payload and optional capture time.
        repo: Raw event repository port.
        time_port: Clock for default capture time.
        inserted: Optional channel notified after the insert.

    Returns:
        AppendOutput with the event id, or errors for an invalid input.
    """
    store = RawStore(repo, time_port, inserted)
    try:
        raw_id = await store.append(inp.category, inp.payload, captured_at=inp.captured_at)
    except ValueError as e:
        error = BronzeValidationError(code="invalid_event", message=str(e), field_name="category")
        return AppendOutput(raw_id=None, errors=[error], success=False)

    latest = store.get_latest(raw_id)
    return AppendOutput(raw_id=raw_id, seq=latest.seq if latest else None)
