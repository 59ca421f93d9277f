"""
Silver component - Validate, normalize and enrich raw request events.
"""

from ._impl import (
    InMemoryCanonicalRepo,
    RecordValidationError,
    Transformer,
    is_third_party,
    normalize_request,
    performance_score,
    quality_score,
    status_class,
)
from .component import run_transform
from .models import (
    DEFAULT_THIRD_PARTY_MARKERS,
    SkipReason,
    TransformConfig,
    TransformInput,
    TransformOutput,
)
from .ports import CanonicalRepoPort, RawEventRepoPort, RecordStorePort, StateStorePort, TimePort

__all__ = [
    # Entry points
    "run_transform",
    # Services
    "Transformer",
    "InMemoryCanonicalRepo",
    # Models
    "SkipReason",
    "TransformConfig",
    "TransformInput",
    "TransformOutput",
    "RecordValidationError",
    "DEFAULT_THIRD_PARTY_MARKERS",
    # Ports
    "CanonicalRepoPort",
    "RawEventRepoPort",
    "RecordStorePort",
    "StateStorePort",
    "TimePort",
    # Helpers
    "normalize_request",
    "is_third_party",
    "performance_score",
    "quality_score",
    "status_class",
]
