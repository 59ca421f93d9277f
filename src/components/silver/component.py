"""
Silver component - Bronze to silver transformation.

Shell Layer - builds a Transformer from ports and runs one pass.
"""

from __future__ import annotations

from src.core.events import EventChannel, SilverWritten

from ._impl import Transformer
from .models import TransformConfig, TransformInput, TransformOutput
from .ports import CanonicalRepoPort, RawEventRepoPort, StateStorePort, TimePort


async def run_transform(
    inp: TransformInput,
    *,
    raw_repo: RawEventRepoPort,
    canonical_repo: CanonicalRepoPort,
    state: StateStorePort,
    time_port: TimePort,
    config: TransformConfig | None = None,
    written: EventChannel[SilverWritten] | None = None,
) -> TransformOutput:
    """
    Run one transform pass.

    With inp.drain, processes batches from the persisted cursor until no raw
    events remain; otherwise processes a single batch.
    """
    transformer = Transformer(raw_repo, canonical_repo, state, time_port, config, written)
    if inp.drain:
        return await transformer.process_all(limit=inp.limit)
    return await transformer.process(since_cursor=inp.since_cursor, limit=inp.limit)
