"""
Manifest handling for snapshots.

The manifest is the metadata + index document at the root of every
snapshot. It is written once per backup and never modified afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import StorageError
from ..core.models import ResourceRecord

logger = logging.getLogger(__name__)

FORMAT_VERSION = "v1"
SUPPORTED_FORMAT_VERSIONS = ("v1",)
MANIFEST_FILE_NAME = "manifest.yaml"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class SnapshotMetadata:
    """
    Descriptive metadata of one snapshot.

    Attributes:
        name: Snapshot name
        timestamp: When the snapshot was taken (UTC)
        format_version: On-disk format version
        source_system_version: Version string of the store it was taken from
        namespaces: Namespaces captured (sorted)
        kinds: Resource types captured (sorted)
        total_resources: Number of records
        size_bytes: Sum of record content lengths (archive size when listed compressed)
        compressed: Whether the snapshot is stored as an archive
        path: Final location (directory or archive)
    """
    name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    format_version: str = FORMAT_VERSION
    source_system_version: str = ""
    namespaces: List[str] = field(default_factory=list)
    kinds: List[str] = field(default_factory=list)
    total_resources: int = 0
    size_bytes: int = 0
    compressed: bool = False
    path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted field layout."""
        return {
            "name": self.name,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "version": self.format_version,
            "kubernetesVersion": self.source_system_version,
            "namespaces": sorted(self.namespaces),
            "resourceTypes": sorted(self.kinds),
            "totalResources": self.total_resources,
            "backupPath": self.path,
            "size": self.size_bytes,
            "compress": self.compressed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotMetadata":
        """Create from the persisted field layout."""
        return cls(
            name=data["name"],
            timestamp=_parse_timestamp(data.get("timestamp")),
            format_version=data.get("version", FORMAT_VERSION),
            source_system_version=data.get("kubernetesVersion", ""),
            namespaces=sorted(data.get("namespaces") or []),
            kinds=sorted(data.get("resourceTypes") or []),
            total_resources=int(data.get("totalResources", 0)),
            size_bytes=int(data.get("size", 0)),
            compressed=bool(data.get("compress", False)),
            path=data.get("backupPath", ""),
        )


@dataclass
class SnapshotManifest:
    """
    Metadata plus the ordered record index of a snapshot.

    Records are kept in write order; replay order is decided by the sequencer.
    """
    metadata: SnapshotMetadata
    records: List[ResourceRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "resources": [r.to_descriptor() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotManifest":
        """
        Create from a parsed manifest document.

        Raises:
            StorageError if the document is malformed or its format version
            is not readable
        """
        if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
            raise StorageError("manifest has no metadata section")

        try:
            metadata = SnapshotMetadata.from_dict(data["metadata"])
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"invalid manifest metadata: {e}") from e

        if metadata.format_version not in SUPPORTED_FORMAT_VERSIONS:
            raise StorageError(
                f"unsupported snapshot format version: {metadata.format_version} "
                f"(supported: {', '.join(SUPPORTED_FORMAT_VERSIONS)})"
            )

        # Older manifests may index entries under "records"
        descriptors = data.get("resources")
        if descriptors is None:
            descriptors = data.get("records") or []

        try:
            records = [ResourceRecord.from_descriptor(d) for d in descriptors]
        except (KeyError, TypeError, AttributeError) as e:
            raise StorageError(f"invalid manifest record entry: {e}") from e

        return cls(metadata=metadata, records=records)

    def validate(self) -> None:
        """
        Check the manifest invariants.

        Raises:
            StorageError if the record count or relative paths are inconsistent
        """
        if len(self.records) != self.metadata.total_resources:
            raise StorageError(
                f"manifest lists {len(self.records)} records but metadata "
                f"declares {self.metadata.total_resources}"
            )
        paths = [r.relative_path for r in self.records]
        if len(set(paths)) != len(paths):
            raise StorageError("manifest contains duplicate record paths")

    def save(self, path: Path) -> None:
        """Save manifest to a YAML file."""
        try:
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.to_dict(), f, sort_keys=False, allow_unicode=True)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"failed to write manifest {path}: {e}") from e

        logger.debug(f"Saved manifest to: {path}")

    @classmethod
    def parse(cls, content) -> "SnapshotManifest":
        """Parse a manifest from YAML text or bytes."""
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise StorageError(f"failed to parse manifest: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path) -> "SnapshotManifest":
        """Load manifest from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise StorageError(f"failed to read manifest {path}: {e}") from e

        manifest = cls.parse(content)
        logger.debug(f"Loaded manifest from: {path}")
        return manifest
