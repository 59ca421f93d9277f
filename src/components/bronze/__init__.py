"""
Bronze component - Append-only raw event layer and collector.
"""

from ._impl import InMemoryRawEventRepo, RawStore, resolve_raw_id, validate_category
from .collector import Collector
from .component import run_append
from .models import AppendInput, AppendOutput, BronzeValidationError, CollectorStats
from .ports import RawEventRepoPort, TimePort

__all__ = [
    # Entry points
    "run_append",
    # Services
    "RawStore",
    "Collector",
    "InMemoryRawEventRepo",
    # Models
    "AppendInput",
    "AppendOutput",
    "BronzeValidationError",
    "CollectorStats",
    # Ports
    "RawEventRepoPort",
    "TimePort",
    # Helpers
    "resolve_raw_id",
    "validate_category",
]
