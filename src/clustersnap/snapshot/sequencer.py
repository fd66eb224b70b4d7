"""
Dependency-aware ordering of records for replay.

Kinds map to coarse priority tiers (definitions and RBAC first, then storage,
namespaces, config, networking, workloads, and finally ingress/autoscaling).
Within a tier records sort by namespace and then name, so the full order is
a function of (tier, namespace, name) alone.
"""

from typing import Iterable, List, Tuple

from ..core.kinds import get_resource_order
from ..core.models import ResourceRecord


def sort_key(record: ResourceRecord) -> Tuple[int, str, str, str]:
    """Total-order key for a record."""
    # Kind last: only unknown kinds share a tier
    return (get_resource_order(record.kind), record.namespace, record.name, record.kind)


def order(records: Iterable[ResourceRecord]) -> List[ResourceRecord]:
    """
    Return records in dependency-safe replay order.

    The input is not modified. Identity keys are unique within a snapshot,
    so any permutation of the same records yields the same sequence.
    """
    return sorted(records, key=sort_key)
