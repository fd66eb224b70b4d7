"""
clustersnap: point-in-time snapshots of cluster configuration.

Captures declarative objects from a cluster's resource API into a portable
on-disk snapshot (directory or tar.gz archive) and replays them back in
dependency order.

Key components:
- core/: Data model, kind tables, errors, cancellation and logging
- snapshot/: Normalization, filtering, ordering, manifest and storage
- runner/: Concurrent collection and sequential replay
- connectors/: Kubernetes REST and in-memory Resource API bindings
- config/: Configuration management
"""

from .manager import SnapshotManager
from .core.models import BackupOptions, RestoreOptions, RestoreResult
from .snapshot.manifest import SnapshotMetadata

__version__ = "0.1.0"

__all__ = [
    "SnapshotManager",
    "BackupOptions",
    "RestoreOptions",
    "RestoreResult",
    "SnapshotMetadata",
    "__version__",
]
