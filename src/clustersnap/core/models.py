"""
Core data models for the snapshot engine.

Defines the captured ResourceRecord, operation options, progress state and
restore results shared by the collection and replay paths.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .kinds import CLUSTER_SCOPE


DEFAULT_EXCLUDED_NAMESPACES = frozenset({"kube-system", "kube-public", "kube-node-lease"})
DEFAULT_BACKUP_DIR = "./backups"
DEFAULT_RESTORE_TIMEOUT = 300.0


def _frozen(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = values.split(",")
    return frozenset(v.strip() for v in values if v is not None)


@dataclass(frozen=True)
class ResourceRecord:
    """
    One captured object.

    Attributes:
        kind: Kind tag (e.g. 'Deployment')
        api_version: Group/version schema identity (e.g. 'apps/v1')
        namespace: Owning namespace; empty for cluster-scoped objects
        name: Object name
        labels: Object labels
        annotations: Object annotations (after normalization)
        content: Serialized bytes of the normalized object
        relative_path: Location inside the snapshot, assigned by the store
    """
    kind: str
    api_version: str
    namespace: str
    name: str
    content: bytes = b""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    relative_path: str = ""

    @property
    def key(self) -> Tuple[str, str, str]:
        """Identity key, unique within one snapshot."""
        return (self.kind, self.namespace, self.name)

    @property
    def is_cluster_scoped(self) -> bool:
        return self.namespace == ""

    @property
    def scope_dir(self) -> str:
        """Partition directory name: the namespace, or 'cluster'."""
        return self.namespace or CLUSTER_SCOPE

    def display_name(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    def to_descriptor(self) -> Dict[str, Any]:
        """Convert to the manifest record descriptor (content excluded)."""
        descriptor: Dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "relativePath": self.relative_path,
        }
        if self.labels:
            descriptor["labels"] = dict(self.labels)
        if self.annotations:
            descriptor["annotations"] = dict(self.annotations)
        return descriptor

    @classmethod
    def from_descriptor(cls, data: Dict[str, Any], content: bytes = b"") -> "ResourceRecord":
        """Create from a manifest record descriptor."""
        return cls(
            kind=data["kind"],
            api_version=data.get("apiVersion", "v1"),
            namespace=data.get("namespace") or "",
            name=data["name"],
            content=content,
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            relative_path=data.get("relativePath", ""),
        )


@dataclass
class ProgressState:
    """
    Progress of a running backup or restore.

    Only the orchestrator driving the operation mutates this object; callbacks
    receive a copy from ``snapshot()``.
    """
    total: int = 0
    completed: int = 0
    current_message: str = ""
    warnings: List[Exception] = field(default_factory=list)

    def advance(self, completed: int, message: str) -> None:
        """Move the completed count forward; it never goes backwards."""
        self.completed = max(self.completed, completed)
        self.current_message = message

    def snapshot(self) -> "ProgressState":
        return ProgressState(
            total=self.total,
            completed=self.completed,
            current_message=self.current_message,
            warnings=list(self.warnings),
        )


ProgressCallback = Callable[[ProgressState], None]


@dataclass(frozen=True)
class BackupOptions:
    """
    Configuration for a backup operation.

    Attributes:
        namespaces: Namespaces to capture (empty = all live namespaces)
        kinds: Resource types to capture (empty = all supported types)
        exclude_namespaces: Namespaces never captured
        exclude_kinds: Resource types never captured
        output_path: Base directory for snapshots
        backup_name: Snapshot name (auto-generated when None)
        compress: Archive the snapshot as tar.gz after writing
    """
    namespaces: FrozenSet[str] = frozenset()
    kinds: FrozenSet[str] = frozenset()
    exclude_namespaces: FrozenSet[str] = DEFAULT_EXCLUDED_NAMESPACES
    exclude_kinds: FrozenSet[str] = frozenset()
    output_path: str = DEFAULT_BACKUP_DIR
    backup_name: Optional[str] = None
    compress: bool = True

    def __post_init__(self):
        for name in ("namespaces", "kinds", "exclude_namespaces", "exclude_kinds"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))


@dataclass(frozen=True)
class RestoreOptions:
    """
    Configuration for a restore operation.

    Attributes:
        backup_path: Snapshot directory or archive to replay
        namespaces: Namespaces to restore ('cluster' or '' selects cluster-scoped)
        kinds: Resource types to restore
        exclude_namespaces: Namespaces never restored
        exclude_kinds: Resource types never restored
        dry_run: Check existence only, never mutate the target
        wait: Pause after each applied record (bounded, best-effort)
        timeout: Upper bound in seconds for the post-apply pause
        overwrite_existing: Update objects that already exist instead of skipping
    """
    backup_path: str = ""
    namespaces: FrozenSet[str] = frozenset()
    kinds: FrozenSet[str] = frozenset()
    exclude_namespaces: FrozenSet[str] = frozenset()
    exclude_kinds: FrozenSet[str] = frozenset()
    dry_run: bool = False
    wait: bool = False
    timeout: float = DEFAULT_RESTORE_TIMEOUT
    overwrite_existing: bool = False

    def __post_init__(self):
        for name in ("namespaces", "kinds", "exclude_namespaces", "exclude_kinds"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))


class ApplyOutcome(str, Enum):
    """State of a record during replay."""
    PENDING = "pending"
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ApplyResult:
    """Outcome of replaying one record."""
    outcome: ApplyOutcome
    kind: str
    namespace: str
    name: str
    detail: str = ""
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (ApplyOutcome.CREATED, ApplyOutcome.UPDATED)


@dataclass
class RestoreResult:
    """Aggregate result of a restore operation."""
    processed: int = 0
    skipped: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    namespaces: List[str] = field(default_factory=list)
    kinds: List[str] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)
    duration: float = 0.0
    dry_run: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "namespaces": self.namespaces,
            "kinds": self.kinds,
            "errors": [str(e) for e in self.errors],
            "duration_seconds": round(self.duration, 3),
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Restore Report{' (dry run)' if self.dry_run else ''}",
            f"  Duration: {self.duration:.1f}s",
            f"  Processed: {self.processed}",
            f"    Created: {self.created}",
            f"    Updated: {self.updated}",
            f"  Skipped: {self.skipped}",
            f"  Errors: {len(self.errors)}",
        ]
        if self.namespaces:
            lines.append(f"  Namespaces: {', '.join(n or CLUSTER_SCOPE for n in self.namespaces)}")
        if self.kinds:
            lines.append(f"  Resource types: {', '.join(self.kinds)}")
        return "\n".join(lines)
