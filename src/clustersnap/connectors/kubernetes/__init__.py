"""
Kubernetes binding of the Resource API.
"""

from typing import Optional

from .kubeconfig import ClusterConnection, find_kubeconfig, load_connection, load_in_cluster, load_kubeconfig
from .rest_client import APPLY_STRATEGIES, KubernetesResourceApi, resource_path
from .retry import RetryConfig


def connect(
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
    apply_strategy: str = "server-side",
    timeout: float = 30.0,
) -> KubernetesResourceApi:
    """Build a client from the standard kubeconfig lookup order."""
    return KubernetesResourceApi(
        load_connection(kubeconfig, context),
        apply_strategy=apply_strategy,
        timeout=timeout,
    )


__all__ = [
    "ClusterConnection",
    "find_kubeconfig",
    "load_connection",
    "load_in_cluster",
    "load_kubeconfig",
    "APPLY_STRATEGIES",
    "KubernetesResourceApi",
    "resource_path",
    "RetryConfig",
    "connect",
]
