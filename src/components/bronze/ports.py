"""
Bronze component - Port interfaces.
"""

from __future__ import annotations

from src.core.ports.db import RawEventRepoPort
from src.core.ports.time import TimePort

__all__ = ["RawEventRepoPort", "TimePort"]
