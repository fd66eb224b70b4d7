"""
Inclusion and exclusion filtering by namespace and resource kind.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Set, Union

from ..core.kinds import CLUSTER_SCOPE, SUPPORTED_RESOURCE_TYPES, lookup, plural_for
from ..core.models import BackupOptions, ResourceRecord, RestoreOptions

logger = logging.getLogger(__name__)

Options = Union[BackupOptions, RestoreOptions]


def _kind_synonyms(kind: str) -> Set[str]:
    """Lower-case singular and plural forms of a kind."""
    singular = kind.lower()
    return {singular, plural_for(singular)}


def _normalize_type(resource_type: str) -> str:
    """Map any spelling of a kind ('Deployment', 'deployment') to its plural type."""
    info = lookup(resource_type)
    if info is not None:
        return info.plural
    return resource_type.lower()


def is_namespace_included(namespace: str, options: Options) -> bool:
    """
    Apply the namespace policy to one record namespace.

    Exclusion always wins. In both sets cluster scope (empty namespace) is
    spelled '' or 'cluster'.
    """
    if namespace:
        if namespace in options.exclude_namespaces:
            return False
    elif "" in options.exclude_namespaces or CLUSTER_SCOPE in options.exclude_namespaces:
        return False

    if not options.namespaces:
        return True

    if namespace == "":
        return "" in options.namespaces or CLUSTER_SCOPE in options.namespaces
    return namespace in options.namespaces


def is_kind_included(kind: str, options: Options) -> bool:
    """
    Apply the kind policy.

    Matches the lower-cased kind or its plural synonym.
    """
    synonyms = _kind_synonyms(kind)
    excluded = {k.lower() for k in options.exclude_kinds}
    if synonyms & excluded:
        return False

    if not options.kinds:
        return True

    included = {k.lower() for k in options.kinds}
    return bool(synonyms & included)


def include(record: ResourceRecord, options: Options) -> bool:
    """Decide whether a record takes part in an operation."""
    return is_namespace_included(record.namespace, options) and is_kind_included(record.kind, options)


def filter_records(records: Iterable[ResourceRecord], options: Options) -> List[ResourceRecord]:
    """Return the records admitted by ``include``, preserving order."""
    return [r for r in records if include(r, options)]


def resolve_backup_kinds(options: BackupOptions) -> List[str]:
    """
    Determine the resource types a backup captures.

    Requested types minus excluded ones; all supported types when none are
    requested. Returned as plural resource types, in request/table order.
    """
    excluded = {_normalize_type(k) for k in options.exclude_kinds}

    if options.kinds:
        requested = sorted({_normalize_type(k) for k in options.kinds})
    else:
        requested = list(SUPPORTED_RESOURCE_TYPES)

    resource_types = []
    for resource_type in requested:
        if resource_type in excluded:
            continue
        if lookup(resource_type) is None:
            logger.warning(f"Ignoring unsupported resource type: {resource_type}")
            continue
        resource_types.append(resource_type)
    return resource_types


def resolve_backup_namespaces(
    options: BackupOptions,
    available: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Determine the namespaces a backup captures.

    Requested namespaces minus excluded ones; every available namespace
    minus excluded ones when none are requested. The 'cluster' token selects
    cluster scope, which is always captured, so it is dropped here.
    """
    candidates = options.namespaces if options.namespaces else (available or [])
    namespaces = {
        ns for ns in candidates
        if ns and ns != CLUSTER_SCOPE and ns not in options.exclude_namespaces
    }
    return sorted(namespaces)
