"""
Replay of a single record against the target Resource API.
"""

import logging
from typing import Any, Dict, Optional

from ..core.cancellation import CancellationToken
from ..core.exceptions import AlreadyExistsError, ApplyError, ConversionError
from ..core.kinds import KindInfo, lookup, plural_for
from ..core.models import ApplyOutcome, ApplyResult, ResourceRecord, RestoreOptions
from ..core.resource_api import ResourceApi
from ..snapshot import normalizer

logger = logging.getLogger(__name__)

# Upper bound for the post-apply pause, whatever the restore timeout
MAX_WAIT_SECONDS = 30.0

SIMULATED_CREATE = "simulated-create"
SIMULATED_UPDATE = "simulated-update"
ALREADY_EXISTS = "already-exists"


def kind_info_for(record: ResourceRecord) -> KindInfo:
    """
    Resolve the kind descriptor for a record.

    Kinds outside the table are described from the record's own apiVersion.
    """
    info = lookup(record.kind)
    if info is not None and info.api_version == record.api_version:
        return info

    group, _, version = record.api_version.rpartition("/")
    return KindInfo(
        kind=record.kind,
        plural=info.plural if info else plural_for(record.kind.lower()),
        group=group,
        version=version or "v1",
        cluster_scoped=info.cluster_scoped if info else record.is_cluster_scoped,
    )


def wait_for_ready(cancel_token: CancellationToken, timeout: float) -> bool:
    """
    Pause after an apply for at most ``min(timeout, 30s)``.

    This is a bounded delay, not a readiness check.

    Returns:
        True if the pause ran to completion, False if cancelled
    """
    delay = max(0.0, min(timeout, MAX_WAIT_SECONDS))
    return cancel_token.wait(delay)


class Applier:
    """
    Applies records one at a time, translating API outcomes into ApplyResults.

    Failures never raise; they come back as FAILED results carrying an
    ApplyError.
    """

    def __init__(self, api: ResourceApi):
        self.api = api

    def apply(
        self,
        record: ResourceRecord,
        options: RestoreOptions,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ApplyResult:
        """
        Replay one record.

        Args:
            record: Record with content loaded
            options: Restore options (dry_run, overwrite_existing, wait, timeout)
            cancel_token: Interrupts the optional post-apply wait

        Returns:
            ApplyResult with outcome CREATED, UPDATED, SKIPPED or FAILED
        """
        try:
            obj = normalizer.deserialize(record.content)
        except ConversionError as e:
            return self._failed(record, f"failed to parse {record.display_name()}: {e}", e)

        kind_info = kind_info_for(record)

        try:
            if options.dry_run:
                result = self._simulate(record, kind_info)
            elif options.overwrite_existing:
                result = self._overwrite(record, kind_info, obj)
            else:
                result = self._create_if_absent(record, kind_info, obj)
        except Exception as e:
            return self._failed(record, f"failed to apply {record.display_name()}: {e}", e)

        logger.debug(
            f"{record.display_name()}: {result.outcome.value}"
            + (f" ({result.detail})" if result.detail else ""),
            extra={"kind": record.kind, "namespace": record.namespace, "outcome": result.outcome.value},
        )

        if options.wait and result.succeeded:
            token = cancel_token or CancellationToken()
            if not wait_for_ready(token, options.timeout):
                logger.warning(f"Wait after {record.display_name()} interrupted: {token.reason}")

        return result

    def _simulate(self, record: ResourceRecord, kind_info: KindInfo) -> ApplyResult:
        existing = self.api.get(kind_info, record.namespace, record.name)
        detail = SIMULATED_UPDATE if existing is not None else SIMULATED_CREATE
        return self._result(record, ApplyOutcome.SKIPPED, detail)

    def _create_if_absent(
        self, record: ResourceRecord, kind_info: KindInfo, obj: Dict[str, Any]
    ) -> ApplyResult:
        if self.api.get(kind_info, record.namespace, record.name) is not None:
            logger.info(f"Skipping existing resource: {record.display_name()}")
            return self._result(record, ApplyOutcome.SKIPPED, ALREADY_EXISTS)

        try:
            outcome = self.api.create_or_update(kind_info, obj, record.namespace, overwrite=False)
        except AlreadyExistsError:
            # Created concurrently between the existence check and the write
            logger.info(f"Skipping existing resource: {record.display_name()}")
            return self._result(record, ApplyOutcome.SKIPPED, ALREADY_EXISTS)
        return self._result(record, outcome)

    def _overwrite(
        self, record: ResourceRecord, kind_info: KindInfo, obj: Dict[str, Any]
    ) -> ApplyResult:
        outcome = self.api.create_or_update(kind_info, obj, record.namespace, overwrite=True)
        return self._result(record, outcome)

    @staticmethod
    def _result(record: ResourceRecord, outcome: ApplyOutcome, detail: str = "") -> ApplyResult:
        return ApplyResult(
            outcome=outcome,
            kind=record.kind,
            namespace=record.namespace,
            name=record.name,
            detail=detail,
        )

    @staticmethod
    def _failed(record: ResourceRecord, message: str, cause: Exception) -> ApplyResult:
        logger.error(message)
        error = ApplyError(message, kind=record.kind, namespace=record.namespace, name=record.name)
        error.__cause__ = cause
        return ApplyResult(
            outcome=ApplyOutcome.FAILED,
            kind=record.kind,
            namespace=record.namespace,
            name=record.name,
            error=error,
        )
