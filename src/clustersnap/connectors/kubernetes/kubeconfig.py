"""
Kubeconfig and in-cluster credential loading.

Resolution order:
1. An explicit kubeconfig path
2. The first existing file listed in KUBECONFIG
3. ~/.kube/config
4. The pod service account (in-cluster)
"""

import base64
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ...core.exceptions import ConfigError

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"


@dataclass
class ClusterConnection:
    """
    Everything needed to talk to one API server.

    Attributes:
        server: API server base URL
        token: Bearer token
        username: Basic-auth user name
        password: Basic-auth password
        client_cert: Path to a client certificate (PEM)
        client_key: Path to the client key (PEM)
        ca_cert: Path to the CA bundle used to verify the server
        insecure: Skip TLS verification
        namespace: Default namespace of the selected context
        context: Name of the selected context ('in-cluster' for service accounts)
    """
    server: str
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    ca_cert: Optional[str] = None
    insecure: bool = False
    namespace: str = "default"
    context: Optional[str] = None
    temp_files: List[str] = field(default_factory=list, repr=False)

    def cleanup(self) -> None:
        """Remove credential files materialized from inline kubeconfig data."""
        for path in self.temp_files:
            Path(path).unlink(missing_ok=True)
        self.temp_files.clear()


def _named(entries: List[Dict[str, Any]], name: str, section: str) -> Dict[str, Any]:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(section) or {}
    raise ConfigError(f"kubeconfig has no {section} named '{name}'")


def _resolve_file(path: Optional[str], base_dir: Path) -> Optional[str]:
    if not path:
        return None
    resolved = Path(path).expanduser()
    if not resolved.is_absolute():
        resolved = base_dir / resolved
    return str(resolved)


def _materialize(data: str, suffix: str, connection: ClusterConnection) -> str:
    """Write base64 kubeconfig data to a private temp file and return its path."""
    try:
        content = base64.b64decode(data)
    except ValueError as e:
        raise ConfigError(f"invalid base64 data in kubeconfig: {e}") from e

    fd, path = tempfile.mkstemp(prefix="clustersnap-", suffix=suffix)
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    connection.temp_files.append(path)
    return path


def find_kubeconfig(path: Optional[str] = None) -> Optional[Path]:
    """
    Locate the kubeconfig file to use.

    Returns:
        The kubeconfig path, or None when none exists (use in-cluster)

    Raises:
        ConfigError if an explicit path does not exist
    """
    if path:
        explicit = Path(path).expanduser()
        if not explicit.is_file():
            raise ConfigError(f"Kubeconfig not found: {explicit}")
        return explicit

    env_value = os.environ.get("KUBECONFIG")
    if env_value:
        for candidate in env_value.split(os.pathsep):
            if candidate and Path(candidate).expanduser().is_file():
                return Path(candidate).expanduser()

    if DEFAULT_KUBECONFIG.is_file():
        return DEFAULT_KUBECONFIG

    return None


def load_kubeconfig(path: Path, context: Optional[str] = None) -> ClusterConnection:
    """
    Build a connection from a kubeconfig file.

    Args:
        path: Kubeconfig file
        context: Context name (default: current-context)

    Raises:
        ConfigError if the file is unreadable or the context is incomplete
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read kubeconfig {path}: {e}") from e

    context_name = context or config.get("current-context")
    if not context_name:
        raise ConfigError(f"kubeconfig {path} has no current-context")

    ctx = _named(config.get("contexts"), context_name, "context")
    cluster = _named(config.get("clusters"), ctx.get("cluster"), "cluster")
    user = _named(config.get("users"), ctx["user"], "user") if ctx.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ConfigError(f"cluster for context '{context_name}' has no server")

    base_dir = Path(path).parent
    connection = ClusterConnection(
        server=server.rstrip("/"),
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
        namespace=ctx.get("namespace") or "default",
        context=context_name,
    )

    if cluster.get("certificate-authority-data"):
        connection.ca_cert = _materialize(cluster["certificate-authority-data"], ".crt", connection)
    else:
        connection.ca_cert = _resolve_file(cluster.get("certificate-authority"), base_dir)

    if user.get("token"):
        connection.token = user["token"]
    elif user.get("tokenFile"):
        token_path = _resolve_file(user["tokenFile"], base_dir)
        try:
            connection.token = Path(token_path).read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigError(f"Failed to read token file {token_path}: {e}") from e

    if user.get("client-certificate-data"):
        connection.client_cert = _materialize(user["client-certificate-data"], ".crt", connection)
    else:
        connection.client_cert = _resolve_file(user.get("client-certificate"), base_dir)

    if user.get("client-key-data"):
        connection.client_key = _materialize(user["client-key-data"], ".key", connection)
    else:
        connection.client_key = _resolve_file(user.get("client-key"), base_dir)

    if user.get("username"):
        connection.username = user["username"]
        connection.password = user.get("password")

    if user.get("exec") or user.get("auth-provider"):
        logger.warning(
            f"Context '{context_name}' uses a credential plugin; only token, "
            f"client certificate and basic auth are supported"
        )

    logger.debug(f"Loaded kubeconfig {path} (context={context_name}, server={connection.server})")
    return connection


def load_in_cluster(account_dir: Path = SERVICE_ACCOUNT_DIR) -> ClusterConnection:
    """
    Build a connection from the pod's service account.

    Raises:
        ConfigError if not running inside a cluster
    """
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    token_path = account_dir / "token"

    if not host or not token_path.is_file():
        raise ConfigError(
            "No kubeconfig found and not running in a cluster "
            "(set KUBECONFIG or pass --kubeconfig)"
        )

    if ":" in host:
        host = f"[{host}]"

    ca_path = account_dir / "ca.crt"
    namespace_path = account_dir / "namespace"

    return ClusterConnection(
        server=f"https://{host}:{port}",
        token=token_path.read_text(encoding="utf-8").strip(),
        ca_cert=str(ca_path) if ca_path.is_file() else None,
        namespace=(
            namespace_path.read_text(encoding="utf-8").strip()
            if namespace_path.is_file() else "default"
        ),
        context="in-cluster",
    )


def load_connection(path: Optional[str] = None, context: Optional[str] = None) -> ClusterConnection:
    """Resolve credentials using the standard lookup order."""
    kubeconfig = find_kubeconfig(path)
    if kubeconfig is not None:
        return load_kubeconfig(kubeconfig, context)

    logger.info("No kubeconfig found, using in-cluster service account")
    return load_in_cluster()
