"""
Kubernetes REST binding of the Resource API.

Talks to the API server directly over HTTPS with ``requests``. REST paths are
built from the static kind table, so no discovery round trips are needed.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from ...core.exceptions import AlreadyExistsError, ConfigError, ResourceApiError
from ...core.kinds import KindInfo
from ...core.models import ApplyOutcome
from ...core.resource_api import ResourceApi, ResourceLister
from .kubeconfig import ClusterConnection
from .retry import RetryConfig, calculate_delay, is_retryable_status

logger = logging.getLogger(__name__)

FIELD_MANAGER = "clustersnap"
APPLY_STRATEGIES = ("server-side", "create-update")
APPLY_PATCH_CONTENT_TYPE = "application/apply-patch+yaml"
LIST_PAGE_SIZE = 500


def resource_path(kind_info: KindInfo, namespace: Optional[str] = None, name: Optional[str] = None) -> str:
    """
    Build the REST path for a kind.

    Examples:
        /api/v1/namespaces/prod/secrets/db
        /apis/apps/v1/namespaces/prod/deployments
        /apis/rbac.authorization.k8s.io/v1/clusterroles/reader
    """
    if kind_info.group:
        path = f"/apis/{kind_info.group}/{kind_info.version}"
    else:
        path = f"/api/{kind_info.version}"

    if namespace and not kind_info.cluster_scoped:
        path += f"/namespaces/{namespace}"

    path += f"/{kind_info.plural}"
    if name:
        path += f"/{name}"
    return path


class _RestLister(ResourceLister):
    """Paginated lister for one kind."""

    def __init__(self, api: "KubernetesResourceApi", kind_info: KindInfo):
        self.api = api
        self.kind_info = kind_info

    def list(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        path = resource_path(self.kind_info, namespace)
        items: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"limit": LIST_PAGE_SIZE}

        while True:
            response = self.api.request("GET", path, params=params)
            body = response.json()
            items.extend(body.get("items") or [])

            token = (body.get("metadata") or {}).get("continue")
            if not token:
                break
            params = {"limit": LIST_PAGE_SIZE, "continue": token}

        return items


class KubernetesResourceApi(ResourceApi):
    """
    Resource API over the Kubernetes REST interface.

    Supports:
    - Bearer token, client certificate and basic auth
    - Custom CA bundles or insecure-skip-verify
    - Server-side apply or create-then-update
    - Retries with exponential backoff on connection errors, 429 and 5xx
    """

    def __init__(
        self,
        connection: ClusterConnection,
        apply_strategy: str = "server-side",
        timeout: float = 30.0,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            connection: Server address and credentials
            apply_strategy: 'server-side' or 'create-update'
            timeout: Request timeout in seconds
            retry_config: Backoff settings for transient failures
            session: Pre-built session (tests inject a mock here)
        """
        if apply_strategy not in APPLY_STRATEGIES:
            raise ConfigError(
                f"Unknown apply strategy '{apply_strategy}' "
                f"(expected one of: {', '.join(APPLY_STRATEGIES)})"
            )

        self.connection = connection
        self.apply_strategy = apply_strategy
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.session = session or requests.Session()
        self._configure_session()

    def _configure_session(self) -> None:
        conn = self.connection
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "clustersnap",
        })

        if conn.token:
            self.session.headers["Authorization"] = f"Bearer {conn.token}"
        elif conn.username:
            self.session.auth = (conn.username, conn.password or "")

        if conn.client_cert and conn.client_key:
            self.session.cert = (conn.client_cert, conn.client_key)

        if conn.insecure:
            self.session.verify = False
        elif conn.ca_cert:
            self.session.verify = conn.ca_cert

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Send a request, retrying transient failures.

        Returns:
            The successful response

        Raises:
            AlreadyExistsError on HTTP 409 AlreadyExists
            ResourceApiError on any other failure
        """
        url = f"{self.connection.server}{path}"
        config = self.retry_config
        last_error = None

        for attempt in range(config.max_attempts):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = str(e)
                logger.warning(
                    f"{method} {path} failed (attempt {attempt + 1}/{config.max_attempts}): {e}"
                )
            else:
                if not is_retryable_status(response.status_code):
                    if response.status_code >= 400:
                        self._raise_for_status(method, path, response)
                    return response
                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    f"{method} {path} returned {response.status_code} "
                    f"(attempt {attempt + 1}/{config.max_attempts})"
                )
                if attempt == config.max_attempts - 1:
                    self._raise_for_status(method, path, response)

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.debug(f"Backing off for {delay:.3f}s before retry")
                time.sleep(delay)

        raise ResourceApiError(
            f"{method} {path} failed after {config.max_attempts} attempts: {last_error}"
        )

    @staticmethod
    def _raise_for_status(method: str, path: str, response: requests.Response) -> None:
        reason = None
        message = response.text
        try:
            status = response.json()
        except ValueError:
            status = None
        if isinstance(status, dict):
            reason = status.get("reason")
            message = status.get("message") or message

        if response.status_code == 409 and reason == "AlreadyExists":
            raise AlreadyExistsError(f"{path} already exists: {message}")

        raise ResourceApiError(
            f"{method} {path} returned {response.status_code}: {message}",
            status_code=response.status_code,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # ResourceApi
    # ------------------------------------------------------------------

    def lister(self, kind_info: KindInfo) -> ResourceLister:
        return _RestLister(self, kind_info)

    def get(self, kind_info: KindInfo, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.request("GET", resource_path(kind_info, namespace, name))
        except ResourceApiError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()

    def create_or_update(
        self,
        kind_info: KindInfo,
        obj: Dict[str, Any],
        namespace: str,
        dry_run: bool = False,
        overwrite: bool = True,
    ) -> ApplyOutcome:
        body = dict(obj)
        metadata = dict(body.get("metadata") or {})
        name = metadata.get("name")
        if not name:
            raise ResourceApiError(f"{kind_info.kind} object has no metadata.name")
        if namespace and not kind_info.cluster_scoped:
            metadata["namespace"] = namespace
        body["metadata"] = metadata

        params = {"dryRun": "All"} if dry_run else {}

        if not overwrite:
            # Plain create: a 409 surfaces as AlreadyExistsError
            self.request("POST", resource_path(kind_info, namespace), params=params, json=body)
            return ApplyOutcome.CREATED
        if self.apply_strategy == "server-side":
            return self._server_side_apply(kind_info, body, namespace, name, params)
        return self._create_then_update(kind_info, body, namespace, name, params)

    def _server_side_apply(
        self, kind_info: KindInfo, body: Dict[str, Any], namespace: str, name: str, params: Dict[str, str]
    ) -> ApplyOutcome:
        response = self.request(
            "PATCH",
            resource_path(kind_info, namespace, name),
            params={**params, "fieldManager": FIELD_MANAGER, "force": "true"},
            data=json.dumps(body),
            headers={"Content-Type": APPLY_PATCH_CONTENT_TYPE},
        )
        return ApplyOutcome.CREATED if response.status_code == 201 else ApplyOutcome.UPDATED

    def _create_then_update(
        self, kind_info: KindInfo, body: Dict[str, Any], namespace: str, name: str, params: Dict[str, str]
    ) -> ApplyOutcome:
        try:
            self.request("POST", resource_path(kind_info, namespace), params=params, json=body)
            return ApplyOutcome.CREATED
        except AlreadyExistsError:
            logger.debug(f"{kind_info.kind} {namespace}/{name} exists, updating")

        current = self.get(kind_info, namespace, name)
        if current is None:
            raise ResourceApiError(f"{kind_info.kind} {namespace}/{name} disappeared during update")

        body["metadata"]["resourceVersion"] = (current.get("metadata") or {}).get("resourceVersion")
        self.request("PUT", resource_path(kind_info, namespace, name), params=params, json=body)
        return ApplyOutcome.UPDATED

    def server_version(self) -> str:
        response = self.request("GET", "/version")
        return response.json().get("gitVersion", "")

    def list_namespaces(self) -> List[str]:
        response = self.request("GET", "/api/v1/namespaces")
        items = response.json().get("items") or []
        return sorted(item["metadata"]["name"] for item in items)

    def close(self) -> None:
        """Close the session and remove temporary credential files."""
        self.session.close()
        self.connection.cleanup()
