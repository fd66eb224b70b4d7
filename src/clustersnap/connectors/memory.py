"""
In-memory Resource API.

A dict-backed stand-in for a cluster, used by the tests and for local demos.
Supports failure injection per (kind, namespace) and records every mutation
so tests can assert that a dry run left the target untouched.
"""

import copy
import itertools
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.exceptions import AlreadyExistsError, ResourceApiError
from ..core.kinds import KindInfo
from ..core.models import ApplyOutcome
from ..core.resource_api import ResourceApi, ResourceLister

logger = logging.getLogger(__name__)

ObjectKey = Tuple[str, str, str]


class _MemoryLister(ResourceLister):
    """Lister for one kind over the in-memory store."""

    def __init__(self, api: "InMemoryResourceApi", kind_info: KindInfo):
        self.api = api
        self.kind_info = kind_info

    def list(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        scope = "" if self.kind_info.cluster_scoped else (namespace or "")
        self.api._check_failure("list", self.kind_info.kind, scope)
        return self.api._objects_of(self.kind_info.kind, None if self.kind_info.cluster_scoped else namespace)


class InMemoryResourceApi(ResourceApi):
    """
    Resource API over a plain dictionary.

    Objects are keyed by (kind, namespace, name). Stored objects gain a
    ``uid``, ``resourceVersion`` and ``creationTimestamp`` like a real server
    would, so captured objects exercise normalization.

    Example:
        >>> api = InMemoryResourceApi(version="v1.29.0")
        >>> api.add({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "prod"}})
        >>> api.fail_list("Secret", "prod")
    """

    def __init__(
        self,
        objects: Optional[Iterable[Dict[str, Any]]] = None,
        version: str = "v1.28.0",
    ):
        self.version = version
        self.mutations: List[Tuple[str, str, str, str]] = []

        self._objects: Dict[ObjectKey, Dict[str, Any]] = {}
        self._list_failures: Dict[Tuple[str, str], Exception] = {}
        self._apply_failures: Dict[Tuple[str, str], Exception] = {}
        self._lock = threading.Lock()
        self._versions = itertools.count(1)

        for obj in objects or []:
            self.add(obj)

    # ------------------------------------------------------------------
    # test helpers
    # ------------------------------------------------------------------

    def add(self, obj: Dict[str, Any]) -> None:
        """Seed an object without recording a mutation."""
        with self._lock:
            self._objects[self._key_of(obj)] = self._stamp(copy.deepcopy(obj), None)

    def fail_list(self, kind: str, namespace: str = "", error: Optional[Exception] = None) -> None:
        """Make listing ``kind`` in ``namespace`` ('' for cluster scope) raise."""
        self._list_failures[(kind, namespace)] = error or ResourceApiError(
            f"injected list failure for {kind} in {namespace or 'cluster'}", status_code=500
        )

    def fail_apply(self, kind: str, namespace: str = "", error: Optional[Exception] = None) -> None:
        """Make get/create_or_update of ``kind`` in ``namespace`` raise."""
        self._apply_failures[(kind, namespace)] = error or ResourceApiError(
            f"injected apply failure for {kind} in {namespace or 'cluster'}", status_code=500
        )

    def objects(self) -> List[Dict[str, Any]]:
        """Copies of every stored object."""
        with self._lock:
            return [copy.deepcopy(o) for o in self._objects.values()]

    def __contains__(self, key: ObjectKey) -> bool:
        with self._lock:
            return key in self._objects

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    # ------------------------------------------------------------------
    # ResourceApi
    # ------------------------------------------------------------------

    def lister(self, kind_info: KindInfo) -> ResourceLister:
        return _MemoryLister(self, kind_info)

    def get(self, kind_info: KindInfo, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        scope = "" if kind_info.cluster_scoped else namespace
        self._check_failure("get", kind_info.kind, scope)
        with self._lock:
            obj = self._objects.get((kind_info.kind, scope, name))
            return copy.deepcopy(obj) if obj is not None else None

    def create_or_update(
        self,
        kind_info: KindInfo,
        obj: Dict[str, Any],
        namespace: str,
        dry_run: bool = False,
        overwrite: bool = True,
    ) -> ApplyOutcome:
        scope = "" if kind_info.cluster_scoped else namespace
        self._check_failure("apply", kind_info.kind, scope)

        name = (obj.get("metadata") or {}).get("name")
        if not name:
            raise ResourceApiError(f"{kind_info.kind} object has no metadata.name", status_code=422)

        key = (kind_info.kind, scope, name)
        with self._lock:
            existing = self._objects.get(key)
            if existing is not None and not overwrite:
                raise AlreadyExistsError(
                    f"{kind_info.kind} {scope}/{name} already exists",
                    kind=kind_info.kind,
                    namespace=scope,
                    name=name,
                )
            outcome = ApplyOutcome.UPDATED if existing is not None else ApplyOutcome.CREATED
            if dry_run:
                return outcome

            stored = copy.deepcopy(obj)
            stored.setdefault("metadata", {})
            if scope:
                stored["metadata"]["namespace"] = scope
            self._objects[key] = self._stamp(stored, existing)
            self.mutations.append((outcome.value, kind_info.kind, scope, name))

        logger.debug(f"{outcome.value} {kind_info.kind} {scope}/{name}")
        return outcome

    def server_version(self) -> str:
        return self.version

    def list_namespaces(self) -> List[str]:
        with self._lock:
            names = {name for (kind, _, name) in self._objects if kind == "Namespace"}
            names.update(ns for (_, ns, _) in self._objects if ns)
        return sorted(names)

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _objects_of(self, kind: str, namespace: Optional[str]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(obj)
                for (obj_kind, obj_ns, _), obj in sorted(self._objects.items())
                if obj_kind == kind and (namespace is None or obj_ns == namespace)
            ]

    def _check_failure(self, operation: str, kind: str, namespace: str) -> None:
        failures = self._list_failures if operation == "list" else self._apply_failures
        error = failures.get((kind, namespace))
        if error is not None:
            raise error

    @staticmethod
    def _key_of(obj: Dict[str, Any]) -> ObjectKey:
        metadata = obj.get("metadata") or {}
        kind = obj.get("kind")
        if not kind or not metadata.get("name"):
            raise ValueError("objects need a kind and metadata.name")
        return (kind, metadata.get("namespace") or "", metadata["name"])

    def _stamp(self, obj: Dict[str, Any], existing: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Add server-assigned metadata the way an API server would."""
        metadata = obj.setdefault("metadata", {})
        previous = (existing or {}).get("metadata", {})
        metadata["uid"] = previous.get("uid") or f"uid-{next(self._versions)}"
        metadata["resourceVersion"] = str(next(self._versions))
        metadata.setdefault("creationTimestamp", previous.get("creationTimestamp", "2024-01-01T00:00:00Z"))
        return obj
