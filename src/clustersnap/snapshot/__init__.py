"""
Snapshot format: normalization, filtering, replay ordering and storage.
"""

from .manifest import SnapshotManifest, SnapshotMetadata, FORMAT_VERSION, MANIFEST_FILE_NAME
from .pack import SnapshotPacker, SnapshotUnpacker
from .store import SnapshotStore
from . import filter, normalizer, sequencer

__all__ = [
    "SnapshotManifest",
    "SnapshotMetadata",
    "FORMAT_VERSION",
    "MANIFEST_FILE_NAME",
    "SnapshotPacker",
    "SnapshotUnpacker",
    "SnapshotStore",
    "filter",
    "normalizer",
    "sequencer",
]
