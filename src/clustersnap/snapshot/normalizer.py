"""
Normalization and canonical serialization of captured objects.

Strips cluster-assigned, non-reproducible fields so two captures of an
unchanged object serialize to byte-identical content. The canonical form:
- Keys are sorted recursively
- Runtime metadata (resourceVersion, uid, timestamps, managedFields) removed
- Apply-history and controller-injected annotations removed
- The status block removed
- Block-style YAML with stable formatting
"""

import copy
import logging
from typing import Any, Dict, Optional

import yaml

from ..core.exceptions import ConversionError
from ..core.kinds import KindInfo
from ..core.models import ResourceRecord

logger = logging.getLogger(__name__)

# Cluster-assigned metadata fields
RUNTIME_METADATA_FIELDS = (
    "resourceVersion",
    "uid",
    "generation",
    "selfLink",
    "creationTimestamp",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
    "managedFields",
)

# Annotation recording a prior client-side apply
LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

# Annotations injected by controllers at runtime, matched by prefix
RUNTIME_ANNOTATION_PREFIXES = (
    "deployment.kubernetes.io/",
    "autoscaling.alpha.kubernetes.io/",
)

SERVICE_ACCOUNT_TOKEN_TYPE = "kubernetes.io/service-account-token"


def is_runtime_annotation(key: str) -> bool:
    """Return True if an annotation key is apply-history or controller-injected."""
    if key == LAST_APPLIED_ANNOTATION:
        return True
    return any(key.startswith(prefix) for prefix in RUNTIME_ANNOTATION_PREFIXES)


def normalize(obj: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a normalized deep copy of a raw object.

    The input is never mutated. Objects without a ``metadata`` mapping are
    returned unchanged (as a copy).

    Args:
        obj: Raw object as returned by the Resource API

    Returns:
        Normalized object
    """
    result = copy.deepcopy(obj)
    metadata = result.get("metadata")
    if not isinstance(metadata, dict):
        return result

    for field in RUNTIME_METADATA_FIELDS:
        metadata.pop(field, None)

    annotations = metadata.get("annotations")
    if isinstance(annotations, dict):
        kept = {k: v for k, v in annotations.items() if not is_runtime_annotation(k)}
        if kept:
            metadata["annotations"] = kept
        else:
            metadata.pop("annotations")

    result.pop("status", None)
    return result


def serialize(obj: Dict[str, Any]) -> bytes:
    """
    Serialize an object to canonical YAML bytes.

    Keys are sorted at every level so serialization is independent of the
    order the API returned fields in.
    """
    text = yaml.safe_dump(
        obj,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )
    return text.encode("utf-8")


def deserialize(content: bytes) -> Dict[str, Any]:
    """
    Parse record content back into an object.

    Raises:
        ConversionError if the content is not a YAML mapping
    """
    try:
        obj = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConversionError(f"failed to parse YAML: {e}") from e

    if not isinstance(obj, dict):
        raise ConversionError("resource content is not a mapping")
    if not isinstance(obj.get("apiVersion"), str):
        raise ConversionError("missing or invalid apiVersion")
    if not isinstance(obj.get("kind"), str):
        raise ConversionError("missing or invalid kind")
    return obj


def should_skip(kind: str, obj: Dict[str, Any]) -> bool:
    """
    Return True for objects the cluster regenerates on its own.

    Skipped:
    - Service account token secrets
    - The per-namespace 'default' ServiceAccount
    - Built-in 'system:' cluster roles and bindings
    """
    name = (obj.get("metadata") or {}).get("name") or ""

    if kind == "Secret":
        return obj.get("type") == SERVICE_ACCOUNT_TOKEN_TYPE
    if kind == "ServiceAccount":
        return name == "default"
    if kind in ("ClusterRole", "ClusterRoleBinding"):
        return name.startswith("system:")
    return False


def to_record(obj: Dict[str, Any], kind_info: KindInfo, namespace: Optional[str] = None) -> ResourceRecord:
    """
    Build a ResourceRecord from a raw object.

    Stamps apiVersion/kind (list results often omit them), normalizes and
    serializes the object.

    Args:
        obj: Raw object
        kind_info: Kind of the object
        namespace: Partition the object was listed in ('' or None for cluster scope)

    Raises:
        ConversionError if the object has no name or cannot be serialized
    """
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise ConversionError(
            f"{kind_info.kind} object has no metadata.name",
            kind=kind_info.kind,
        )
    name = metadata["name"]

    stamped = dict(obj)
    stamped["apiVersion"] = kind_info.api_version
    stamped["kind"] = kind_info.kind
    normalized = normalize(stamped)

    try:
        content = serialize(normalized)
    except yaml.YAMLError as e:
        raise ConversionError(
            f"failed to serialize {kind_info.kind}/{name}: {e}",
            kind=kind_info.kind,
            name=name,
        ) from e

    normalized_meta = normalized.get("metadata") or {}
    record_namespace = "" if kind_info.cluster_scoped else (namespace or normalized_meta.get("namespace") or "")

    return ResourceRecord(
        kind=kind_info.kind,
        api_version=kind_info.api_version,
        namespace=record_namespace,
        name=name,
        content=content,
        labels=dict(normalized_meta.get("labels") or {}),
        annotations=dict(normalized_meta.get("annotations") or {}),
    )
