"""
Configuration loader for catalog synchronisation.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml
except ImportError:
    yaml = None

from ..core.exceptions import ConfigError


logger = logging.getLogger(__name__)


# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "TABLEAU_SERVER_URL": "tableau.server_url",
    "TABLEAU_PAT_NAME": "tableau.pat_name",
    "TABLEAU_PAT_SECRET": "tableau.pat_secret",
    "TABLEAU_USERNAME": "tableau.username",
    "TABLEAU_PASSWORD": "tableau.password",
    "COLLIBRA_BASE_URL": "collibra.base_url",
    "COLLIBRA_USERNAME": "collibra.username",
    "COLLIBRA_PASSWORD": "collibra.password",
    "CATALOG_SYNC_DB_BACKEND": "store.backend",
    "CATALOG_SYNC_SQLITE_PATH": "store.sqlite.db_path",
    "CATALOG_SYNC_SQLSERVER_CONN_STR": "store.sqlserver.connection_string",
    "CATALOG_SYNC_SQLSERVER_PASSWORD": "store.sqlserver.password",
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class SyncConfig:
    """
    Configuration for catalog synchronisation.

    Loads a YAML file over built-in defaults, then applies environment
    variable overrides (credentials are usually supplied that way).
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = _merge(self._default_config(), self._load_config()) if self.config_path \
            else self._default_config()
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if yaml is None:
            raise ImportError(
                "pyyaml is required for config loading. "
                "Install with: pip install pyyaml"
            )

        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if config is not None and not isinstance(config, dict):
            raise ConfigError(f"Config root must be a mapping: {self.config_path}")
        return config or {}

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "tableau": {
                "server_url": None,
                "api_version": "3.19",
                "default_site": "",
                "page_size": 100,
                "timeout": 30,
                "verify_ssl": True,
                "rest_retry": {"max_attempts": 3, "initial_delay_ms": 2000},
                "graphql_retry": {
                    "max_attempts": 5,
                    "initial_delay_ms": 2000,
                    "max_delay_ms": 10000,
                },
            },
            "collibra": {
                "base_url": None,
                "batch_size": 500,
                "timeout": 60,
                "verify_ssl": True,
                "retry": {"max_attempts": 3, "initial_delay_ms": 2000},
                "community": None,
                "domains": {},
                "relation_types": {},
            },
            "store": {
                "backend": "sqlite",
                "sqlite": {"db_path": "local/state/catalog_sync.db"},
                "sqlserver": {
                    "host": "localhost",
                    "port": 1433,
                    "database": "CatalogSync",
                    "username": "sa",
                    "schema": "catalog",
                },
            },
            "sync": {
                "sites": [],
                # 'global' propagates once after all sites, 'site' after each
                "propagate": "global",
            },
            "logging": {
                "level": "INFO",
                "format": "text",
            },
        }

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_var, dotted_key in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                self.set(dotted_key, value)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by dotted key."""
        *parents, leaf = key.split(".")
        section = self.config
        for k in parents:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[leaf] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def get_tableau_config(self) -> Dict[str, Any]:
        """Get source catalog configuration."""
        return self.config.get("tableau", {})

    def get_collibra_config(self) -> Dict[str, Any]:
        """Get downstream catalog configuration."""
        return self.config.get("collibra", {})

    def get_store_config(self) -> Dict[str, Any]:
        """Get asset store configuration."""
        return self.config.get("store", {})

    def get_sync_config(self) -> Dict[str, Any]:
        """Get runner configuration."""
        return self.config.get("sync", {})

    def get_logging_config(self) -> Dict[str, Any]:
        return self.config.get("logging", {})

    def require(self, key: str) -> Any:
        """
        Get a value that must be set.

        Raises:
            ConfigError: If the value is missing or blank
        """
        value = self.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigError(f"Missing required configuration value: {key}")
        return value
