"""
Resource API interface for reading and writing objects in a cluster.

The snapshot engine depends only on this capability set; concrete bindings
live under ``clustersnap.connectors``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .kinds import KindInfo
from .models import ApplyOutcome


class ResourceLister(ABC):
    """
    Lists the objects of one resource kind.

    One implementation exists per supported kind; bindings select it from a
    static kind table instead of inspecting list result types at runtime.
    """

    kind_info: KindInfo

    @abstractmethod
    def list(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List objects of this kind.

        Args:
            namespace: Namespace to list in; ignored for cluster-scoped kinds

        Returns:
            Raw objects as plain dictionaries

        Raises:
            ResourceApiError if the listing fails
        """
        pass


class ResourceApi(ABC):
    """
    Abstract base class for Resource API bindings.
    """

    @abstractmethod
    def lister(self, kind_info: KindInfo) -> ResourceLister:
        """Return the lister for a kind."""
        pass

    @abstractmethod
    def get(self, kind_info: KindInfo, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one object.

        Returns:
            The object, or None if it does not exist

        Raises:
            ResourceApiError for any failure other than not-found
        """
        pass

    @abstractmethod
    def create_or_update(
        self,
        kind_info: KindInfo,
        obj: Dict[str, Any],
        namespace: str,
        dry_run: bool = False,
        overwrite: bool = True,
    ) -> ApplyOutcome:
        """
        Idempotently create or update an object.

        Args:
            kind_info: Kind of the object
            obj: Object to write
            namespace: Target namespace ("" for cluster-scoped kinds)
            dry_run: Validate the write without persisting it
            overwrite: When False, only create; an existing object is left
                untouched and AlreadyExistsError is raised

        Returns:
            ApplyOutcome.CREATED or ApplyOutcome.UPDATED

        Raises:
            AlreadyExistsError if the object exists and overwrite is False
            ResourceApiError for any other failure
        """
        pass

    @abstractmethod
    def server_version(self) -> str:
        """Return the store-wide version string (e.g. 'v1.28.4')."""
        pass

    @abstractmethod
    def list_namespaces(self) -> List[str]:
        """Return the names of all live namespaces."""
        pass

    def close(self) -> None:
        """Release any held resources."""
        pass
