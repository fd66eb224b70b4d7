"""
Backup orchestration: resolve targets, collect, and persist a snapshot.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..core.cancellation import CancellationToken
from ..core.exceptions import CancellationError
from ..core.kinds import is_cluster_scoped
from ..core.models import BackupOptions, ProgressCallback, ProgressState
from ..core.resource_api import ResourceApi
from ..snapshot.filter import resolve_backup_kinds, resolve_backup_namespaces
from ..snapshot.manifest import SnapshotMetadata
from ..snapshot.store import SnapshotStore
from .collector import Collector

logger = logging.getLogger(__name__)

MIN_ESTIMATE = 100


def generate_backup_name(now: Optional[datetime] = None) -> str:
    """Default snapshot name, e.g. 'backup-2024-05-01-13-45-10'."""
    now = now or datetime.now()
    return now.strftime("backup-%Y-%m-%d-%H-%M-%S")


def estimate_resource_count(namespace_count: int, resource_types: Sequence[str]) -> int:
    """
    Rough up-front size of a backup, used as the initial progress total.

    Based on typical cluster shapes; never less than 100.
    """
    cluster_scoped = 0
    per_namespace = 0

    for resource_type in resource_types:
        if is_cluster_scoped(resource_type):
            if resource_type == "namespaces":
                cluster_scoped += namespace_count + 10
            elif resource_type in ("clusterroles", "clusterrolebindings"):
                cluster_scoped += 50
            else:
                cluster_scoped += 20
        else:
            if resource_type in ("deployments", "services"):
                per_namespace += 10
            elif resource_type in ("configmaps", "secrets"):
                per_namespace += 20
            else:
                per_namespace += 5

    return max(MIN_ESTIMATE, cluster_scoped + per_namespace * namespace_count)


class BackupOrchestrator:
    """
    Drives one backup from target resolution to a saved snapshot.

    The orchestrator owns the ProgressState; callbacks receive copies.
    """

    def __init__(
        self,
        api: ResourceApi,
        store: Optional[SnapshotStore] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            api: Resource API to capture from
            store: Snapshot store (default: one rooted at options.output_path)
            max_workers: Collector worker threads
        """
        self.api = api
        self.store = store
        self.max_workers = max_workers

    def create_backup(
        self,
        options: BackupOptions,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SnapshotMetadata:
        """
        Take a snapshot.

        Args:
            options: What to capture and where to write it
            progress_callback: Receives ProgressState copies
            cancel_token: Stops collection and writing early

        Returns:
            Metadata of the saved snapshot

        Raises:
            StorageError if the snapshot cannot be written
            CancellationError if cancelled; partial_result holds the records
                collected so far
            ResourceApiError if the server version or namespaces cannot be read
        """
        token = cancel_token or CancellationToken()
        store = self.store or SnapshotStore(options.output_path)
        name = options.backup_name or generate_backup_name()
        started = time.monotonic()
        log_context = {"snapshot": name, "operation": "backup"}

        logger.info(f"Starting backup: {name}", extra=log_context)

        server_version = self.api.server_version()

        available = None if options.namespaces else self.api.list_namespaces()
        namespaces = resolve_backup_namespaces(options, available)
        kinds = resolve_backup_kinds(options)

        progress = ProgressState(
            total=estimate_resource_count(len(namespaces), kinds),
            current_message="Starting backup...",
        )

        def notify() -> None:
            if progress_callback is not None:
                progress_callback(progress.snapshot())

        notify()

        def on_collected(count: int, message: str) -> None:
            progress.advance(count, message)
            notify()

        collector = Collector(self.api, max_workers=self.max_workers)
        result = collector.collect(kinds, namespaces, token, on_progress=on_collected)

        progress.warnings.extend(result.warnings)
        progress.total = len(result.records)
        progress.advance(len(result.records), f"Collected {len(result.records)} resources")

        if result.cancelled:
            logger.warning(f"Backup {name} cancelled during collection", extra=log_context)
            raise CancellationError(
                f"backup cancelled: {token.reason or 'cancelled'}",
                partial_result=result.records,
            )

        # Namespaces whose every listing failed were not captured
        captured = [ns for ns in namespaces if ns not in result.failed_namespaces]

        metadata = SnapshotMetadata(
            name=name,
            timestamp=datetime.now(timezone.utc),
            source_system_version=server_version,
            namespaces=captured,
            kinds=kinds,
            compressed=options.compress,
        )

        progress.current_message = "Saving backup files..."
        notify()

        try:
            saved, _ = store.save(metadata, result.records, token)
        except CancellationError as e:
            raise CancellationError(str(e), partial_result=result.records) from e

        progress.current_message = "Backup completed"
        notify()

        elapsed = time.monotonic() - started
        logger.info(
            f"Backup completed: {saved.name} ({saved.total_resources} resources, {elapsed:.1f}s)",
            extra=log_context,
        )
        if result.warnings:
            logger.warning(f"Backup completed with {len(result.warnings)} warnings", extra=log_context)

        return saved
