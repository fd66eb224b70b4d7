"""
Restore orchestration: load, filter, order and replay a snapshot.

Replay is strictly sequential so the dependency order chosen by the
sequencer is the order the target sees.
"""

import logging
import time
from typing import Optional

from ..core.cancellation import CancellationToken
from ..core.exceptions import CancellationError
from ..core.models import (
    ApplyOutcome, ProgressCallback, ProgressState, RestoreOptions, RestoreResult,
)
from ..core.resource_api import ResourceApi
from ..snapshot import filter as record_filter
from ..snapshot import sequencer
from ..snapshot.store import SnapshotStore
from .applier import Applier

logger = logging.getLogger(__name__)


class RestoreOrchestrator:
    """
    Drives one restore from a stored snapshot to the target Resource API.
    """

    def __init__(self, api: ResourceApi, store: SnapshotStore):
        self.api = api
        self.store = store
        self.applier = Applier(api)

    def restore_backup(
        self,
        options: RestoreOptions,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RestoreResult:
        """
        Replay a snapshot.

        Records excluded by the filter count as skipped. Parse and apply
        failures are collected in ``errors`` and replay continues.

        Raises:
            StorageError if the snapshot cannot be loaded
            CancellationError if cancelled; partial_result holds the
                RestoreResult so far
        """
        token = cancel_token or CancellationToken()
        started = time.monotonic()
        result = RestoreResult(dry_run=options.dry_run)

        logger.info(
            f"Starting restore from: {options.backup_path}"
            + (" (dry run)" if options.dry_run else ""),
            extra={"operation": "restore"},
        )

        try:
            manifest, records = self.store.load(options.backup_path, token)
        except CancellationError as e:
            result.duration = time.monotonic() - started
            raise CancellationError(str(e), partial_result=result) from e

        log_context = {"snapshot": manifest.metadata.name, "operation": "restore"}
        logger.info(f"Loaded backup: {manifest.metadata.name} ({len(records)} resources)", extra=log_context)

        selected = record_filter.filter_records(records, options)
        result.skipped = len(records) - len(selected)
        logger.info(f"Filtered to {len(selected)} resources for restore", extra=log_context)

        if not selected:
            result.duration = time.monotonic() - started
            return result

        ordered = sequencer.order(selected)
        progress = ProgressState(total=len(ordered), current_message="Starting restore...")

        def notify() -> None:
            if progress_callback is not None:
                progress_callback(progress.snapshot())

        namespaces = set()
        kinds = set()

        for index, record in enumerate(ordered):
            if token.is_cancelled():
                self._finalize(result, namespaces, kinds, started)
                logger.warning(
                    f"Restore cancelled after {index} of {len(ordered)} resources",
                    extra=log_context,
                )
                raise CancellationError(
                    f"restore cancelled: {token.reason or 'cancelled'}",
                    partial_result=result,
                )

            progress.advance(index, f"Restoring {record.kind}/{record.name}")
            notify()

            applied = self.applier.apply(record, options, token)

            if applied.outcome == ApplyOutcome.FAILED:
                result.failed += 1
                result.errors.append(applied.error)
                progress.warnings.append(applied.error)
                continue

            if applied.outcome == ApplyOutcome.SKIPPED and not options.dry_run:
                result.skipped += 1
                continue

            # Dry-run simulations count as processed
            result.processed += 1
            if applied.outcome == ApplyOutcome.CREATED:
                result.created += 1
            elif applied.outcome == ApplyOutcome.UPDATED:
                result.updated += 1
            namespaces.add(record.namespace)
            kinds.add(record.kind.lower())

        progress.advance(len(ordered), "Restore completed")
        notify()

        self._finalize(result, namespaces, kinds, started)
        logger.info(
            f"Restore completed: {result.processed} processed, {result.skipped} skipped, "
            f"{len(result.errors)} errors",
            extra=log_context,
        )
        return result

    @staticmethod
    def _finalize(result: RestoreResult, namespaces, kinds, started: float) -> None:
        result.namespaces = sorted(namespaces)
        result.kinds = sorted(kinds)
        result.duration = time.monotonic() - started
