"""
Runners for collecting, backing up and restoring snapshots.
"""

from .collector import Collector, CollectionResult
from .applier import Applier, wait_for_ready
from .backup_runner import BackupOrchestrator, estimate_resource_count, generate_backup_name
from .restore_runner import RestoreOrchestrator

__all__ = [
    "Collector",
    "CollectionResult",
    "Applier",
    "wait_for_ready",
    "BackupOrchestrator",
    "estimate_resource_count",
    "generate_backup_name",
    "RestoreOrchestrator",
]
