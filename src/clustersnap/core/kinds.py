"""
Static resource kind tables.

Every lookup the engine needs about a resource kind lives here:
- API group/version used to stamp captured objects and build REST paths
- Whether the kind is cluster-scoped or namespaced
- Restore priority tier (dependency order)
- Singular/plural resource type synonyms

The tables are built once at import time and exposed read-only.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class KindInfo:
    """
    Schema identity of one supported resource kind.

    Attributes:
        kind: Kind tag as it appears in objects (e.g. 'Deployment')
        plural: Lower-case plural resource type (e.g. 'deployments')
        group: API group ('' for the core group)
        version: API version within the group
        cluster_scoped: True if the kind is unique cluster-wide
    """
    kind: str
    plural: str
    group: str = ""
    version: str = "v1"
    cluster_scoped: bool = False

    @property
    def api_version(self) -> str:
        """Return the apiVersion string ('v1', 'apps/v1', ...)."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def singular(self) -> str:
        return self.kind.lower()


_KINDS: Tuple[KindInfo, ...] = (
    # Core group
    KindInfo("Namespace", "namespaces", cluster_scoped=True),
    KindInfo("PersistentVolume", "persistentvolumes", cluster_scoped=True),
    KindInfo("Service", "services"),
    KindInfo("Endpoints", "endpoints"),
    KindInfo("ConfigMap", "configmaps"),
    KindInfo("Secret", "secrets"),
    KindInfo("PersistentVolumeClaim", "persistentvolumeclaims"),
    KindInfo("ServiceAccount", "serviceaccounts"),
    KindInfo("Pod", "pods"),
    KindInfo("Event", "events"),
    # apps
    KindInfo("Deployment", "deployments", "apps"),
    KindInfo("StatefulSet", "statefulsets", "apps"),
    KindInfo("DaemonSet", "daemonsets", "apps"),
    KindInfo("ReplicaSet", "replicasets", "apps"),
    # batch
    KindInfo("Job", "jobs", "batch"),
    KindInfo("CronJob", "cronjobs", "batch"),
    # rbac
    KindInfo("Role", "roles", "rbac.authorization.k8s.io"),
    KindInfo("RoleBinding", "rolebindings", "rbac.authorization.k8s.io"),
    KindInfo("ClusterRole", "clusterroles", "rbac.authorization.k8s.io", cluster_scoped=True),
    KindInfo("ClusterRoleBinding", "clusterrolebindings", "rbac.authorization.k8s.io", cluster_scoped=True),
    # networking
    KindInfo("Ingress", "ingresses", "networking.k8s.io"),
    KindInfo("NetworkPolicy", "networkpolicies", "networking.k8s.io"),
    # storage
    KindInfo("StorageClass", "storageclasses", "storage.k8s.io", cluster_scoped=True),
    KindInfo("VolumeSnapshotClass", "volumesnapshotclasses", "snapshot.storage.k8s.io", cluster_scoped=True),
    # policy / autoscaling
    KindInfo("PodDisruptionBudget", "poddisruptionbudgets", "policy"),
    KindInfo("HorizontalPodAutoscaler", "horizontalpodautoscalers", "autoscaling", "v2"),
    # extensions
    KindInfo("CustomResourceDefinition", "customresourcedefinitions", "apiextensions.k8s.io", cluster_scoped=True),
)

KINDS_BY_NAME: Mapping[str, KindInfo] = MappingProxyType({k.kind: k for k in _KINDS})
KINDS_BY_PLURAL: Mapping[str, KindInfo] = MappingProxyType({k.plural: k for k in _KINDS})

# Dependency-ordered restore sequence, lowest tier first
RESOURCE_ORDER: Tuple[str, ...] = (
    "CustomResourceDefinition", "ClusterRole", "ClusterRoleBinding",
    "PersistentVolume", "StorageClass", "VolumeSnapshotClass",
    "Namespace",
    "Secret", "ConfigMap", "ServiceAccount", "Role", "RoleBinding", "PersistentVolumeClaim",
    "NetworkPolicy", "Service", "Endpoints",
    "Deployment", "StatefulSet", "DaemonSet", "Job", "CronJob", "ReplicaSet", "Pod",
    "Ingress", "HorizontalPodAutoscaler", "PodDisruptionBudget", "Event",
)

_ORDER_INDEX: Mapping[str, int] = MappingProxyType(
    {kind: tier for tier, kind in enumerate(RESOURCE_ORDER)}
)

# Resource types captured when a backup names none explicitly
SUPPORTED_RESOURCE_TYPES: Tuple[str, ...] = (
    "namespaces", "clusterroles", "clusterrolebindings", "persistentvolumes",
    "storageclasses", "deployments", "services", "configmaps", "secrets",
    "persistentvolumeclaims", "serviceaccounts", "roles", "rolebindings",
    "ingresses", "networkpolicies", "horizontalpodautoscalers",
    "poddisruptionbudgets", "statefulsets", "daemonsets", "jobs", "cronjobs",
    "replicasets", "pods",
)

_PLURALS: Dict[str, str] = {k.singular: k.plural for k in _KINDS}
PLURALS: Mapping[str, str] = MappingProxyType(_PLURALS)

# Name used for the cluster-scoped partition on disk and in filters
CLUSTER_SCOPE = "cluster"


def get_resource_order(kind: str) -> int:
    """
    Return the restore tier for a kind.

    Unknown kinds sort after every known tier.
    """
    return _ORDER_INDEX.get(kind, len(RESOURCE_ORDER))


def plural_for(resource_type: str) -> str:
    """
    Return the plural form of a lower-case resource type.

    Falls back to appending 's' for kinds missing from the table.
    """
    resource_type = resource_type.lower()
    if resource_type in PLURALS:
        return PLURALS[resource_type]
    return resource_type + "s"


def lookup(name: str) -> Optional[KindInfo]:
    """
    Resolve a kind tag, singular type or plural type to its KindInfo.

    Accepts 'Deployment', 'deployment' or 'deployments'.
    """
    if name in KINDS_BY_NAME:
        return KINDS_BY_NAME[name]
    lowered = name.lower()
    if lowered in KINDS_BY_PLURAL:
        return KINDS_BY_PLURAL[lowered]
    plural = _PLURALS.get(lowered)
    if plural:
        return KINDS_BY_PLURAL[plural]
    return None


def is_cluster_scoped(resource_type: str) -> bool:
    """Return True if the kind or resource type is cluster-scoped."""
    info = lookup(resource_type)
    return info.cluster_scoped if info else False


def api_version_for(kind: str) -> str:
    """Return the apiVersion for a kind, defaulting to core 'v1'."""
    info = KINDS_BY_NAME.get(kind)
    return info.api_version if info else "v1"
