"""
Concurrent collection of live objects into ResourceRecords.

Work is partitioned into one task for all cluster-scoped kinds plus one task
per namespace. Tasks run on a ThreadPoolExecutor and only touch their own
local lists; the calling thread fans results in as they complete and is the
single writer of the aggregate result and the single caller of the progress
hook.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Collection, List, Optional, Sequence

from ..core.cancellation import CancellationToken
from ..core.exceptions import CollectionError, ConversionError
from ..core.kinds import KindInfo, lookup
from ..core.models import ResourceRecord
from ..core.resource_api import ResourceApi
from ..snapshot import normalizer, sequencer

logger = logging.getLogger(__name__)

MAX_WORKERS_CAP = 16

CollectProgress = Callable[[int, str], None]


@dataclass
class CollectionResult:
    """
    Aggregate result of one collection pass.

    Attributes:
        records: Captured records in replay order
        warnings: Per-kind listing failures and per-object conversion failures
        cancelled: True if the cancellation token stopped the pass early
        failed_namespaces: Namespaces in which every requested kind failed to list
    """
    records: List[ResourceRecord] = field(default_factory=list)
    warnings: List[Exception] = field(default_factory=list)
    cancelled: bool = False
    failed_namespaces: List[str] = field(default_factory=list)


@dataclass
class _Partition:
    """One unit of concurrent work: cluster scope or a single namespace."""
    namespace: Optional[str]
    kinds: List[KindInfo]

    @property
    def label(self) -> str:
        return self.namespace or "cluster"


class Collector:
    """
    Lists every requested kind in every requested partition.

    Example:
        >>> collector = Collector(api, max_workers=8)
        >>> result = collector.collect(["deployments", "namespaces"], ["prod"])
        >>> len(result.records)
    """

    def __init__(self, api: ResourceApi, max_workers: Optional[int] = None):
        """
        Args:
            api: Resource API to list objects through
            max_workers: Worker threads (default: one per partition, capped at 16)
        """
        self.api = api
        self.max_workers = max_workers

    def collect(
        self,
        kinds: Sequence[str],
        namespaces: Sequence[str],
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[CollectProgress] = None,
    ) -> CollectionResult:
        """
        Collect records for the given kinds and namespaces.

        Args:
            kinds: Resource types or kind names to capture
            namespaces: Namespaces to capture namespaced kinds in
            cancel_token: Checked before each task and before each kind
            on_progress: Called on the calling thread with the running total

        Returns:
            CollectionResult with everything gathered
        """
        token = cancel_token or CancellationToken()
        partitions = self._plan(kinds, namespaces)
        result = CollectionResult()

        if not partitions:
            logger.info("Nothing to collect")
            return result

        workers = self._worker_count(len(partitions))
        logger.info(
            f"Collecting {len(partitions)} partitions with {workers} workers"
        )

        selected = frozenset(namespaces)
        collected: List[ResourceRecord] = []

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="clustersnap-collect") as executor:
            futures = {
                executor.submit(self._collect_partition, partition, selected, token): partition
                for partition in partitions
            }

            for future in as_completed(futures):
                partition = futures[future]
                partial = future.result()

                collected.extend(partial.records)
                result.warnings.extend(partial.warnings)
                result.failed_namespaces.extend(partial.failed_namespaces)
                result.cancelled = result.cancelled or partial.cancelled

                logger.debug(
                    f"Partition {partition.label}: {len(partial.records)} records, "
                    f"{len(partial.warnings)} warnings"
                )
                if on_progress is not None:
                    on_progress(len(collected), f"Collected {len(collected)} resources")

        result.records = sequencer.order(collected)
        result.failed_namespaces.sort()
        result.cancelled = result.cancelled or token.is_cancelled()

        if result.cancelled:
            logger.warning(f"Collection cancelled after {len(result.records)} records")
        else:
            logger.info(
                f"Collected {len(result.records)} records "
                f"({len(result.warnings)} warnings)"
            )
        return result

    def _plan(self, kinds: Sequence[str], namespaces: Sequence[str]) -> List[_Partition]:
        kind_infos = []
        for name in kinds:
            info = name if isinstance(name, KindInfo) else lookup(name)
            if info is None:
                logger.warning(f"Skipping unsupported resource type: {name}")
                continue
            kind_infos.append(info)

        cluster_kinds = [k for k in kind_infos if k.cluster_scoped]
        namespaced_kinds = [k for k in kind_infos if not k.cluster_scoped]

        partitions = []
        if cluster_kinds:
            partitions.append(_Partition(namespace=None, kinds=cluster_kinds))
        if namespaced_kinds:
            for namespace in sorted(set(namespaces)):
                partitions.append(_Partition(namespace=namespace, kinds=namespaced_kinds))
        return partitions

    def _worker_count(self, partitions: int) -> int:
        requested = self.max_workers or partitions
        return max(1, min(requested, partitions, MAX_WORKERS_CAP))

    def _collect_partition(
        self,
        partition: _Partition,
        selected_namespaces: Collection[str],
        token: CancellationToken,
    ) -> CollectionResult:
        """Collect one partition. Runs on a worker thread; touches only local state."""
        local = CollectionResult()

        if token.is_cancelled():
            local.cancelled = True
            return local

        list_failures = 0
        for kind_info in partition.kinds:
            if token.is_cancelled():
                local.cancelled = True
                break

            try:
                objects = self.api.lister(kind_info).list(partition.namespace)
            except Exception as e:
                logger.warning(f"Failed to list {kind_info.plural} in {partition.label}: {e}")
                error = CollectionError(
                    f"failed to list {kind_info.plural} in {partition.label}: {e}",
                    kind=kind_info.kind,
                    namespace=partition.namespace,
                )
                error.__cause__ = e
                local.warnings.append(error)
                list_failures += 1
                continue

            for obj in objects:
                try:
                    record = self._capture(obj, kind_info, partition.namespace, selected_namespaces)
                except ConversionError as e:
                    logger.warning(f"Dropping {kind_info.kind} in {partition.label}: {e}")
                    local.warnings.append(e)
                    continue
                except Exception as e:
                    name = _object_name(obj)
                    logger.warning(f"Dropping {kind_info.kind} {name} in {partition.label}: {e}")
                    error = ConversionError(
                        f"failed to convert {kind_info.kind} {name}: {e}",
                        kind=kind_info.kind,
                        name=name,
                    )
                    error.__cause__ = e
                    local.warnings.append(error)
                    continue
                if record is not None:
                    local.records.append(record)

        if partition.namespace and partition.kinds and list_failures == len(partition.kinds):
            logger.warning(f"Every listing failed in namespace {partition.namespace}")
            local.failed_namespaces.append(partition.namespace)

        return local

    def _capture(
        self,
        obj,
        kind_info: KindInfo,
        namespace: Optional[str],
        selected_namespaces: Collection[str],
    ) -> Optional[ResourceRecord]:
        """Convert one listed object, or return None if it is not captured."""
        if normalizer.should_skip(kind_info.kind, obj):
            return None
        if kind_info.kind == "Namespace" and not self._namespace_selected(obj, selected_namespaces):
            return None
        return normalizer.to_record(obj, kind_info, namespace)

    @staticmethod
    def _namespace_selected(obj, selected_namespaces: Collection[str]) -> bool:
        """Namespace objects are captured only for the namespaces being collected."""
        name = (obj.get("metadata") or {}).get("name")
        return name in selected_namespaces


def _object_name(obj) -> Optional[str]:
    metadata = obj.get("metadata") if isinstance(obj, dict) else None
    return metadata.get("name") if isinstance(metadata, dict) else None
