"""Bulk ingestion and reporting for an insurance agency's Lead -> Quote -> Sale funnel."""

from . import analytics, ingestion, models, orchestrator, store  # noqa: F401
from .errors import (
    ConfigurationError,
    LqsPipelineError,
    ParseError,
    ParseTimeoutError,
    StoreError,
    UnsupportedFileTypeError,
    UploadInProgressError,
)
from .models import (
    Household,
    HouseholdStatus,
    ImportKind,
    LeadSource,
    MarketingBucket,
    Quote,
    RowError,
    Sale,
    TeamMember,
    UploadResult,
)
from .orchestrator import REGISTRY, UploadContext, UploadOrchestrator, UploadState, UploadTask

__all__ = [
    "ConfigurationError",
    "Household",
    "HouseholdStatus",
    "ImportKind",
    "LeadSource",
    "LqsPipelineError",
    "MarketingBucket",
    "ParseError",
    "ParseTimeoutError",
    "Quote",
    "REGISTRY",
    "RowError",
    "Sale",
    "StoreError",
    "TeamMember",
    "UnsupportedFileTypeError",
    "UploadContext",
    "UploadInProgressError",
    "UploadOrchestrator",
    "UploadResult",
    "UploadState",
    "UploadTask",
    "analytics",
    "ingestion",
    "orchestrator",
    "store",
]
