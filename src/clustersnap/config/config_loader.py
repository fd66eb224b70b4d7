"""
Configuration loader for clustersnap.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import ConfigError
from ..core.models import DEFAULT_BACKUP_DIR, DEFAULT_EXCLUDED_NAMESPACES, DEFAULT_RESTORE_TIMEOUT


logger = logging.getLogger(__name__)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` onto ``base`` (in place)."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class ClusterSnapConfig:
    """
    Configuration for clustersnap.

    Defaults are overlaid with an optional YAML file and then with
    environment variables:
        CLUSTERSNAP_BACKUP_DIR      storage.backup_dir
        KUBECONFIG                  cluster.kubeconfig
        CLUSTERSNAP_APPLY_STRATEGY  cluster.apply_strategy
        CLUSTERSNAP_MAX_WORKERS     backup.max_workers
        CLUSTERSNAP_LOG_LEVEL       logging.level
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = self._default_config()
        if self.config_path:
            _merge(self.config, self._load_config())
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        return config

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return copy.deepcopy({
            "storage": {
                "backup_dir": DEFAULT_BACKUP_DIR,
                "compress": True,
            },
            "cluster": {
                "kubeconfig": None,
                "context": None,
                "apply_strategy": "server-side",
                "request_timeout": 30.0,
            },
            "backup": {
                "exclude_namespaces": sorted(DEFAULT_EXCLUDED_NAMESPACES),
                "max_workers": None,
            },
            "restore": {
                "timeout": DEFAULT_RESTORE_TIMEOUT,
                "wait": False,
                "overwrite_existing": False,
            },
            "logging": {
                "level": "INFO",
                "structured": False,
            },
        })

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        backup_dir = os.environ.get("CLUSTERSNAP_BACKUP_DIR")
        if backup_dir:
            self.config.setdefault("storage", {})["backup_dir"] = backup_dir

        kubeconfig = os.environ.get("KUBECONFIG")
        if kubeconfig and not self.get("cluster.kubeconfig"):
            # Only the first entry of a KUBECONFIG list is used
            self.config.setdefault("cluster", {})["kubeconfig"] = kubeconfig.split(os.pathsep)[0]

        strategy = os.environ.get("CLUSTERSNAP_APPLY_STRATEGY")
        if strategy:
            self.config.setdefault("cluster", {})["apply_strategy"] = strategy

        max_workers = os.environ.get("CLUSTERSNAP_MAX_WORKERS")
        if max_workers:
            try:
                workers = int(max_workers)
            except ValueError as e:
                raise ConfigError(f"CLUSTERSNAP_MAX_WORKERS must be an integer, got '{max_workers}'") from e
            self.config.setdefault("backup", {})["max_workers"] = workers

        log_level = os.environ.get("CLUSTERSNAP_LOG_LEVEL")
        if log_level:
            self.config.setdefault("logging", {})["level"] = log_level

    def get_storage_config(self) -> Dict[str, Any]:
        """Get storage configuration."""
        return self.config.get("storage", {})

    def get_cluster_config(self) -> Dict[str, Any]:
        """Get cluster connection configuration."""
        return self.config.get("cluster", {})

    def get_backup_config(self) -> Dict[str, Any]:
        """Get backup defaults."""
        return self.config.get("backup", {})

    def get_restore_config(self) -> Dict[str, Any]:
        """Get restore defaults."""
        return self.config.get("restore", {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config.get("logging", {})

    @property
    def backup_dir(self) -> str:
        return self.get("storage.backup_dir", DEFAULT_BACKUP_DIR)

    @property
    def log_level(self) -> int:
        """Numeric level for logging.level, e.g. 'DEBUG' -> 10."""
        name = str(self.get("logging.level", "INFO")).upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ConfigError(f"Unknown logging.level '{name}'")
        return level

    @property
    def exclude_namespaces(self) -> List[str]:
        return list(self.get("backup.exclude_namespaces", []))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key (e.g. 'cluster.apply_strategy')."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default
