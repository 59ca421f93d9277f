"""
Silver component - Port interfaces.
"""

from __future__ import annotations

from typing import Protocol

from src.core.entities import CanonicalRecord
from src.core.ports.db import CanonicalRepoPort, RawEventRepoPort
from src.core.ports.state import StateStorePort
from src.core.ports.time import TimePort


class RecordStorePort(Protocol):
    """Writes a transformed record together with its downstream rollups."""

    def store_written(self, record: CanonicalRecord, previous: CanonicalRecord | None) -> None:
        """Persist the record; raises (and writes nothing) on storage failure."""
        ...


__all__ = ["CanonicalRepoPort", "RawEventRepoPort", "RecordStorePort", "StateStorePort", "TimePort"]
