"""
Core abstractions for the clustersnap snapshot engine.
"""

from .models import (
    ResourceRecord, ProgressState, ProgressCallback,
    BackupOptions, RestoreOptions, ApplyOutcome, ApplyResult, RestoreResult,
)
from .kinds import KindInfo, RESOURCE_ORDER, SUPPORTED_RESOURCE_TYPES
from .cancellation import CancellationToken
from .resource_api import ResourceApi, ResourceLister
from .exceptions import (
    SnapshotError, ConfigError, CollectionError, ConversionError,
    ResourceApiError, ApplyError, AlreadyExistsError, StorageError,
    CancellationError,
)

__all__ = [
    "ResourceRecord",
    "ProgressState",
    "ProgressCallback",
    "BackupOptions",
    "RestoreOptions",
    "ApplyOutcome",
    "ApplyResult",
    "RestoreResult",
    "KindInfo",
    "RESOURCE_ORDER",
    "SUPPORTED_RESOURCE_TYPES",
    "CancellationToken",
    "ResourceApi",
    "ResourceLister",
    "SnapshotError",
    "ConfigError",
    "CollectionError",
    "ConversionError",
    "ResourceApiError",
    "ApplyError",
    "AlreadyExistsError",
    "StorageError",
    "CancellationError",
]
