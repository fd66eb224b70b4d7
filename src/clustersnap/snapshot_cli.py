#!/usr/bin/env python3
"""
CLI for cluster snapshot backup/restore/list/delete operations.

Usage:
    clustersnap backup  [--name NAME] [--output ./backups] [--namespaces prod,staging] [--no-compress]
    clustersnap restore [--backup ./backups/backup-2024-05-01-13-45-10.tar.gz] [--dry-run] [--overwrite]
    clustersnap list    [--path ./backups] [--detail] [--sort-by timestamp]
    clustersnap delete  backup-2024-05-01-13-45-10 [--path ./backups]
"""

import argparse
import json
import logging
import signal
import sys
from contextlib import contextmanager
from typing import List, Optional

from .config.config_loader import ClusterSnapConfig
from .connectors.kubernetes import connect
from .core.cancellation import CancellationToken
from .core.exceptions import CancellationError, SnapshotError
from .core.logging import configure_logging
from .core.models import BackupOptions, ProgressState, RestoreOptions
from .manager import SORT_KEYS, SnapshotManager

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, structured: bool = False, level: int = logging.INFO) -> None:
    """Configure logging. --verbose always means DEBUG."""
    log_level = logging.DEBUG if verbose else level
    configure_logging(level=log_level, structured=structured)


def split_list(value: Optional[str]) -> List[str]:
    """Parse a comma-separated flag value."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def print_progress(progress: ProgressState) -> None:
    print(f"\rProgress: {progress.completed}/{progress.total} - {progress.current_message}", end="")
    if progress.total and progress.completed >= progress.total:
        print()


def format_size(size: int) -> str:
    """Human-readable byte count."""
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


@contextmanager
def cancel_on_signal(token: CancellationToken):
    """Cancel ``token`` on SIGINT/SIGTERM for the duration of the block."""
    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handle_shutdown_signal(signum, frame):
        logger.info(f"Received signal {signum}, cancelling...")
        token.cancel(f"signal {signum}")

    signal.signal(signal.SIGINT, _handle_shutdown_signal)
    signal.signal(signal.SIGTERM, _handle_shutdown_signal)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def build_manager(args, config: ClusterSnapConfig, backup_dir: str, with_api: bool = True) -> SnapshotManager:
    cluster_config = config.get_cluster_config()
    api = None
    if with_api:
        api = connect(
            kubeconfig=args.kubeconfig or cluster_config.get("kubeconfig"),
            context=args.context or cluster_config.get("context"),
            apply_strategy=cluster_config.get("apply_strategy") or "server-side",
            timeout=float(cluster_config.get("request_timeout") or 30.0),
        )
    return SnapshotManager(
        api=api,
        backup_dir=backup_dir,
        max_workers=config.get_backup_config().get("max_workers"),
    )


def cmd_backup(args, config: ClusterSnapConfig) -> int:
    """Create a backup."""
    output = args.output or config.backup_dir
    exclude_namespaces = (
        split_list(args.exclude_namespaces)
        if args.exclude_namespaces is not None
        else config.exclude_namespaces
    )
    storage_config = config.get_storage_config()
    compress = args.compress if args.compress is not None else bool(storage_config.get("compress", True))

    options = BackupOptions(
        namespaces=split_list(args.namespaces),
        kinds=split_list(args.resource_types),
        exclude_namespaces=exclude_namespaces,
        exclude_kinds=split_list(args.exclude_resource_types),
        output_path=output,
        backup_name=args.name,
        compress=compress,
    )

    manager = build_manager(args, config, output)
    try:
        with cancel_on_signal(CancellationToken()) as token:
            metadata = manager.create_backup(options, print_progress, token)
    except CancellationError as e:
        partial = len(e.partial_result or [])
        logger.error(f"Backup cancelled ({partial} resources collected, nothing saved)")
        return 1
    except SnapshotError as e:
        logger.error(f"Backup failed: {e}")
        return 1
    finally:
        if manager.api is not None:
            manager.api.close()

    print("\nBackup completed successfully!")
    print(f"Backup name: {metadata.name}")
    print(f"Location: {metadata.path}")
    print(f"Resources backed up: {metadata.total_resources}")
    print(f"Namespaces: {', '.join(metadata.namespaces)}")
    print(f"Size: {format_size(metadata.size_bytes)}")
    return 0


def cmd_restore(args, config: ClusterSnapConfig) -> int:
    """Restore a backup."""
    restore_config = config.get_restore_config()
    options = RestoreOptions(
        backup_path=args.backup or "",
        namespaces=split_list(args.namespaces),
        kinds=split_list(args.resource_types),
        exclude_namespaces=split_list(args.exclude_namespaces),
        exclude_kinds=split_list(args.exclude_resource_types),
        dry_run=args.dry_run,
        wait=args.wait or bool(restore_config.get("wait", False)),
        timeout=args.timeout if args.timeout is not None else float(restore_config.get("timeout", 300.0)),
        overwrite_existing=args.overwrite or bool(restore_config.get("overwrite_existing", False)),
    )

    manager = build_manager(args, config, args.path or config.backup_dir)
    try:
        with cancel_on_signal(CancellationToken()) as token:
            result = manager.restore_backup(options, print_progress, token)
    except CancellationError as e:
        logger.error(f"Restore cancelled: {e}")
        if e.partial_result is not None:
            print(e.partial_result.summary())
        return 1
    except SnapshotError as e:
        logger.error(f"Restore failed: {e}")
        return 1
    finally:
        if manager.api is not None:
            manager.api.close()

    print(result.summary())
    for error in result.errors:
        print(f"  - {error}")

    if args.json:
        print("\n" + json.dumps(result.to_dict(), indent=2))

    return 0 if not result.errors else 1


def cmd_list(args, config: ClusterSnapConfig) -> int:
    """List backups."""
    manager = build_manager(args, config, args.path or config.backup_dir, with_api=False)
    try:
        backups = manager.list_backups(sort_by=args.sort_by)
    except SnapshotError as e:
        logger.error(f"Failed to list backups: {e}")
        return 1

    if args.json:
        print(json.dumps([b.to_dict() for b in backups], indent=2))
        return 0

    if not backups:
        print(f"No backups found in {manager.backup_dir}")
        return 0

    print(f"{'NAME':<40} {'CREATED':<20} {'RESOURCES':>9} {'SIZE':>10}  COMPRESSED")
    for backup in backups:
        created = backup.timestamp.strftime("%Y-%m-%d %H:%M:%S") if backup.timestamp else "-"
        print(
            f"{backup.name:<40} {created:<20} {backup.total_resources:>9} "
            f"{format_size(backup.size_bytes):>10}  {'yes' if backup.compressed else 'no'}"
        )
        if args.detail:
            print(f"  Path: {backup.path}")
            print(f"  Kubernetes version: {backup.source_system_version}")
            print(f"  Namespaces: {', '.join(backup.namespaces)}")
            print(f"  Resource types: {', '.join(backup.kinds)}")
    return 0


def cmd_delete(args, config: ClusterSnapConfig) -> int:
    """Delete a backup."""
    manager = build_manager(args, config, args.path or config.backup_dir, with_api=False)
    try:
        manager.delete_backup(args.backup)
    except SnapshotError as e:
        logger.error(f"Failed to delete backup: {e}")
        return 1

    print(f"Deleted backup: {args.backup}")
    return 0


def _add_filter_args(parser: argparse.ArgumentParser, action: str) -> None:
    parser.add_argument("--namespaces", help=f"Comma-separated namespaces to {action}")
    parser.add_argument("--resource-types", help=f"Comma-separated resource types to {action}")
    parser.add_argument("--exclude-resource-types", help="Comma-separated resource types to exclude")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="clustersnap",
        description="Cluster configuration snapshot CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose/debug logging")
    parser.add_argument("--structured-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--config", help="Path to a clustersnap YAML config file")
    parser.add_argument("--kubeconfig", help="Path to kubeconfig (default: $KUBECONFIG or ~/.kube/config)")
    parser.add_argument("--context", help="Kubeconfig context to use")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Backup command
    backup_parser = subparsers.add_parser("backup", help="Back up cluster resources")
    backup_parser.add_argument("--name", help="Backup name (default: backup-<timestamp>)")
    backup_parser.add_argument("-o", "--output", help="Output directory for backups")
    _add_filter_args(backup_parser, "back up")
    backup_parser.add_argument(
        "--exclude-namespaces",
        help="Comma-separated namespaces to exclude (default: kube-system,kube-public,kube-node-lease)",
    )
    backup_parser.add_argument(
        "--compress", action=argparse.BooleanOptionalAction, default=None,
        help="Compress the backup as tar.gz (default: on)",
    )

    # Restore command
    restore_parser = subparsers.add_parser("restore", help="Restore resources from a backup")
    restore_parser.add_argument("--backup", help="Backup directory or archive (default: latest backup)")
    restore_parser.add_argument("--path", help="Directory searched for the latest backup")
    _add_filter_args(restore_parser, "restore")
    restore_parser.add_argument("--exclude-namespaces", help="Comma-separated namespaces to exclude")
    restore_parser.add_argument("--dry-run", action="store_true", help="Report without making changes")
    restore_parser.add_argument("--wait", action="store_true", help="Pause after each applied resource")
    restore_parser.add_argument("--timeout", type=float, help="Upper bound in seconds for waits (default: 300)")
    restore_parser.add_argument("--overwrite", action="store_true", help="Update resources that already exist")
    restore_parser.add_argument("--json", action="store_true", help="Output report as JSON")

    # List command
    list_parser = subparsers.add_parser("list", help="List available backups")
    list_parser.add_argument("--path", help="Backup directory")
    list_parser.add_argument("-d", "--detail", action="store_true", help="Show detailed backup information")
    list_parser.add_argument("--sort-by", choices=list(SORT_KEYS), default="timestamp", help="Sort order")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a backup")
    delete_parser.add_argument("backup", help="Backup name or path")
    delete_parser.add_argument("--path", help="Backup directory")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = ClusterSnapConfig(args.config)
        log_level = config.log_level
    except SnapshotError as e:
        setup_logging(verbose=args.verbose, structured=args.structured_logs)
        logger.error(str(e))
        return 1

    logging_config = config.get_logging_config()
    setup_logging(
        verbose=args.verbose,
        structured=args.structured_logs or bool(logging_config.get("structured", False)),
        level=log_level,
    )

    commands = {
        "backup": cmd_backup,
        "restore": cmd_restore,
        "list": cmd_list,
        "delete": cmd_delete,
    }
    command = commands.get(args.command)
    if command is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return 1

    try:
        return command(args, config)
    except SnapshotError as e:
        # Connection setup failures (kubeconfig, strategy) surface here
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
