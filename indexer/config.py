"""
Indexer - Configuration.

============================================================
SOURCES
============================================================
Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honored via python-dotenv)
- YAML config file

Command-line flags (indexer.cli) override both.

============================================================
REQUIRED
============================================================
- NODE_URL: Celo node to read registry state from
- MIN_CHAIN_HEIGHT: Height the chain must reach before the first
  cycle; missing or 0 is a fatal startup error

============================================================
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigurationError, InvalidConfigError, MissingConfigError


logger = logging.getLogger(__name__)


@dataclass
class IndexerConfig:
    """Runtime configuration of the indexer process."""

    network_name: str = "mainnet"
    database_url: str = "sqlite:///rpc_uptime.db"
    node_url: Optional[str] = None
    external_node_url: Optional[str] = None
    min_chain_height: int = 0

    cycle_interval_seconds: int = 300
    probe_timeout_seconds: float = 5.0
    probe_max_concurrency: Optional[int] = None

    chain_ready_poll_seconds: float = 5.0
    chain_ready_max_poll_seconds: float = 60.0
    chain_ready_backoff_base: float = 1.5
    chain_read_timeout_seconds: float = 30.0

    log_level: str = "INFO"
    log_format: str = "text"

    # Environment variable for each field
    ENV_VARS = {
        "network_name": "NETWORK_NAME",
        "database_url": "DATABASE_URL",
        "node_url": "NODE_URL",
        "external_node_url": "EXTERNAL_NODE_URL",
        "min_chain_height": "MIN_CHAIN_HEIGHT",
        "cycle_interval_seconds": "CYCLE_INTERVAL_SECONDS",
        "probe_timeout_seconds": "PROBE_TIMEOUT_SECONDS",
        "probe_max_concurrency": "PROBE_MAX_CONCURRENCY",
        "chain_ready_poll_seconds": "CHAIN_READY_POLL_SECONDS",
        "chain_ready_max_poll_seconds": "CHAIN_READY_MAX_POLL_SECONDS",
        "chain_ready_backoff_base": "CHAIN_READY_BACKOFF_BASE",
        "chain_read_timeout_seconds": "CHAIN_READ_TIMEOUT_SECONDS",
        "log_level": "LOG_LEVEL",
        "log_format": "LOG_FORMAT",
    }

    REQUIRED = ("node_url", "min_chain_height")

    _INT_FIELDS = ("min_chain_height", "cycle_interval_seconds", "probe_max_concurrency")
    _FLOAT_FIELDS = (
        "probe_timeout_seconds",
        "chain_ready_poll_seconds",
        "chain_ready_max_poll_seconds",
        "chain_ready_backoff_base",
        "chain_read_timeout_seconds",
    )

    # ---------------------------------------------------------
    # Loading
    # ---------------------------------------------------------

    @classmethod
    def _coerce(cls, key: str, raw: Any) -> Any:
        if raw is None or raw == "":
            return None
        try:
            if key in cls._INT_FIELDS:
                return int(raw)
            if key in cls._FLOAT_FIELDS:
                return float(raw)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(key, raw, "not a number") from e
        return str(raw)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "IndexerConfig":
        """
        Load configuration from environment variables.

        Args:
            dotenv: Load a .env file from the working directory first
        """
        if dotenv:
            load_dotenv()

        config = cls()
        for key, env_var in cls.ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw is None or raw == "":
                continue
            setattr(config, key, cls._coerce(key, raw))
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "IndexerConfig":
        """
        Load configuration from a YAML file.

        Keys are the field names (network_name, node_url, ...).
        Unknown keys are ignored with a warning.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", config_key="config")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must be a mapping: {path}", config_key="config")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexerConfig":
        known = {f.name for f in fields(cls)}
        config = cls()
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            setattr(config, key, cls._coerce(key, value))
        return config

    def merge(self, overrides: Dict[str, Any]) -> "IndexerConfig":
        """Return a copy with every non-None override applied."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ---------------------------------------------------------
    # Validation
    # ---------------------------------------------------------

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.network_name:
            errors.append("network_name is required")

        if not self.database_url:
            errors.append("database_url is required")

        if not self.node_url:
            errors.append("node_url is required (NODE_URL)")

        if not self.min_chain_height or self.min_chain_height < 1:
            errors.append("min_chain_height must be set to a positive height (MIN_CHAIN_HEIGHT)")

        if self.cycle_interval_seconds is None or self.cycle_interval_seconds < 1:
            errors.append("cycle_interval_seconds must be at least 1")

        if self.probe_timeout_seconds is None or self.probe_timeout_seconds <= 0:
            errors.append("probe_timeout_seconds must be positive")

        if self.probe_max_concurrency is not None and self.probe_max_concurrency < 1:
            errors.append("probe_max_concurrency must be at least 1")

        if self.chain_ready_poll_seconds is None or self.chain_ready_poll_seconds <= 0:
            errors.append("chain_ready_poll_seconds must be positive")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")

        return errors

    def validate_or_raise(self) -> None:
        """
        Raise if the configuration cannot be used.

        Raises:
            MissingConfigError: A required setting is not set
            ConfigurationError: Any other validation error, all listed
        """
        errors = self.validate()
        if errors:
            for key in self.REQUIRED:
                if not getattr(self, key):
                    raise MissingConfigError(self.ENV_VARS[key])
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                context={"errors": errors},
            )
