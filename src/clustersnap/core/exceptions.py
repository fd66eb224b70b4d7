"""
Custom exceptions for the snapshot engine.

Per-record failures (CollectionError, ConversionError, ApplyError) are
recovered where they happen and surface as warnings in an operation's result.
StorageError and CancellationError terminate the operation.
"""

from typing import Any, Optional


class SnapshotError(Exception):
    """Base exception for all clustersnap errors."""
    pass


class ConfigError(SnapshotError):
    """
    Error in clustersnap configuration.

    Raised when:
    - Configuration file is missing or not valid YAML
    - A kubeconfig cannot be located or has no usable context
    """
    pass


class CollectionError(SnapshotError):
    """
    Listing one kind in one scope failed.

    Recorded as a warning; collection of other kinds and namespaces continues.
    """

    def __init__(self, message: str, kind: str = None, namespace: str = None):
        super().__init__(message)
        self.kind = kind
        self.namespace = namespace


class ConversionError(SnapshotError):
    """
    Normalizing or serializing a single object failed.

    The object is dropped from the snapshot and the error recorded as a warning.
    """

    def __init__(self, message: str, kind: str = None, name: str = None):
        super().__init__(message)
        self.kind = kind
        self.name = name


class ResourceApiError(SnapshotError):
    """
    Error returned by the remote Resource API.

    Raised when:
    - The API server is unreachable after retries
    - The API returns a non-success status code
    """

    def __init__(self, message: str, status_code: int = None, reason: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ApplyError(SnapshotError):
    """
    Replaying one record against the target failed.

    Carries the originating record identity so the restore report can name it.
    """

    def __init__(
        self,
        message: str,
        kind: str = None,
        namespace: str = None,
        name: str = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.namespace = namespace
        self.name = name


class AlreadyExistsError(ApplyError):
    """
    The target object already exists.

    Not an error when overwrite is disabled: the record is counted as skipped.
    """
    pass


class StorageError(SnapshotError):
    """
    Snapshot storage failure.

    Raised when:
    - Manifest cannot be written, read or parsed
    - Archive creation or extraction fails
    - A record file referenced by the manifest is missing

    Fatal for the whole backup or restore.
    """
    pass


class CancellationError(SnapshotError):
    """
    Operation aborted by the caller.

    Attributes:
        partial_result: Best-effort result collected before cancellation
    """

    def __init__(self, message: str = "operation cancelled", partial_result: Optional[Any] = None):
        super().__init__(message)
        self.partial_result = partial_result
