"""
Operation entry points: backup, restore, list and delete.
"""

import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .core.cancellation import CancellationToken
from .core.exceptions import SnapshotError, StorageError
from .core.models import (
    DEFAULT_BACKUP_DIR, BackupOptions, ProgressCallback, RestoreOptions, RestoreResult,
)
from .core.resource_api import ResourceApi
from .runner.backup_runner import BackupOrchestrator
from .runner.restore_runner import RestoreOrchestrator
from .snapshot.manifest import SnapshotMetadata
from .snapshot.store import SnapshotStore

logger = logging.getLogger(__name__)

SORT_KEYS: Dict[str, Callable[[SnapshotMetadata], object]] = {
    "timestamp": lambda m: m.timestamp,
    "name": lambda m: m.name,
    "size": lambda m: m.size_bytes,
    "resources": lambda m: m.total_resources,
}


class SnapshotManager:
    """
    Facade over the backup and restore orchestrators and the snapshot store.

    Example:
        >>> manager = SnapshotManager(api, backup_dir="./backups")
        >>> metadata = manager.create_backup(BackupOptions(namespaces={"prod"}))
        >>> result = manager.restore_backup(RestoreOptions(dry_run=True))
        >>> print(result.summary())
    """

    def __init__(
        self,
        api: Optional[ResourceApi] = None,
        backup_dir: str = DEFAULT_BACKUP_DIR,
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            api: Resource API of the cluster (needed for backup and restore)
            backup_dir: Base directory for restore, list and delete
            max_workers: Collector worker threads for backups
        """
        self.api = api
        self.backup_dir = backup_dir
        self.max_workers = max_workers
        self.store = SnapshotStore(backup_dir)

    def _require_api(self) -> ResourceApi:
        if self.api is None:
            raise SnapshotError("a Resource API is required for this operation")
        return self.api

    def create_backup(
        self,
        options: BackupOptions,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SnapshotMetadata:
        """Take a snapshot into ``options.output_path``."""
        orchestrator = BackupOrchestrator(
            self._require_api(),
            store=SnapshotStore(options.output_path),
            max_workers=self.max_workers,
        )
        return orchestrator.create_backup(options, progress_callback, cancel_token)

    def restore_backup(
        self,
        options: RestoreOptions,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RestoreResult:
        """
        Replay a snapshot.

        With no ``backup_path`` the newest snapshot in the backup directory
        is used.

        Raises:
            StorageError if no snapshot is given and none exist
        """
        if not options.backup_path:
            latest = self.store.latest()
            if latest is None:
                raise StorageError(f"No backups found in {self.backup_dir}")
            logger.info(f"Using latest backup: {latest.name} (created: {latest.timestamp})")
            options = replace(options, backup_path=latest.path)

        orchestrator = RestoreOrchestrator(self._require_api(), self.store)
        return orchestrator.restore_backup(options, progress_callback, cancel_token)

    def list_backups(self, sort_by: str = "timestamp") -> List[SnapshotMetadata]:
        """
        List snapshots in the backup directory.

        Args:
            sort_by: 'timestamp' (newest first), 'name', 'size' or 'resources'
                (largest first)
        """
        if sort_by not in SORT_KEYS:
            raise ValueError(f"Unknown sort key '{sort_by}' (expected one of: {', '.join(SORT_KEYS)})")

        backups = self.store.list()
        if sort_by == "timestamp":
            return backups
        return sorted(backups, key=SORT_KEYS[sort_by], reverse=sort_by != "name")

    def delete_backup(self, path: str) -> None:
        """Delete a snapshot by path or by name within the backup directory."""
        self.store.delete(self.store.locate(path))
