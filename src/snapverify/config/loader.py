"""
Configuration Loader.

Loads and validates configuration from YAML files with environment
variable substitution.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from snapverify.config.environment import load_env_file, secret_overrides
from snapverify.config.models import SnapverifyConfig

# Default configuration file locations, searched in order
DEFAULT_CONFIG_PATHS = [
    "/etc/s3_backup.yml",
    "/etc/snapverify.yaml",
    "snapverify.yaml",
    "snapverify.yml",
]

# Environment variable for config path
CONFIG_ENV_VAR = "SNAPVERIFY_CONFIG"

# Environment variable overrides for configuration settings
# Maps env var name to config path (dot-separated)
ENV_VAR_OVERRIDES = {
    "SNAPVERIFY_NODE_NAME": "node_name",
    "SNAPVERIFY_CLUSTER_NAME": "cluster_name",
    "SNAPVERIFY_ENV": "environment",
    "SNAPVERIFY_CLUSTER_URL": "cluster.url",
    "SNAPVERIFY_HTTP_TIMEOUT": "cluster.http_timeout_seconds",
    "SNAPVERIFY_BUCKET": "repository.bucket",
    "SNAPVERIFY_TEST_SIZE": "probe.test_size",
    "SNAPVERIFY_BACKUP_TIMEOUT": "timeouts.backup_timeout_seconds",
    "SNAPVERIFY_POLL_INTERVAL": "timeouts.snapshot_poll_interval_seconds",
    "SNAPVERIFY_RETENTION_MONTHS": "retention.months",
    "SNAPVERIFY_LOG_LEVEL": "logging.level",
    "SNAPVERIFY_LOG_FILE": "logging.file",
}


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        errors: list[dict] | None = None,
        path: Path | None = None,
    ) -> None:
        """Initialize configuration error.

        Args:
            message: Error message
            errors: List of validation errors (from Pydantic)
            path: Path to the config file that caused the error
        """
        super().__init__(message)
        self.errors = errors or []
        self.path = path

    def __str__(self) -> str:
        """Format error message with details."""
        msg = super().__str__()
        if self.path:
            msg = f"{msg} (file: {self.path})"
        if self.errors:
            details = []
            for err in self.errors[:5]:
                loc = ".".join(str(x) for x in err.get("loc", []))
                details.append(f"  - {loc}: {err.get('msg', 'Unknown error')}")
            if len(self.errors) > 5:
                details.append(f"  ... and {len(self.errors) - 5} more errors")
            msg = f"{msg}\n" + "\n".join(details)
        return msg


class ConfigLoader:
    """Loads configuration from YAML files.

    Supports:
    - YAML configuration files
    - Environment variable substitution (${VAR} and ${VAR:-default} syntax)
    - SNAPVERIFY_* overrides and secrets from the environment / .env
    - Validation via Pydantic

    Usage:
        # Load from specific file
        config = ConfigLoader("/etc/s3_backup.yml").load()

        # Load from SNAPVERIFY_CONFIG or the default locations
        config = ConfigLoader().load_from_env()
    """

    # Matches: ${VAR_NAME}, ${VAR_NAME:-default} or ${VAR_NAME:default}
    ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-?([^}]*))?\}")

    def __init__(
        self,
        config_path: str | Path | None = None,
        env_file: str = ".env",
    ) -> None:
        """Initialize the config loader.

        Args:
            config_path: Path to YAML config file (optional).
                If not provided, use load_from_env() to auto-discover.
            env_file: Path to .env file for environment loading
        """
        self._config_path = Path(config_path) if config_path else None
        self._env_file = env_file
        self._loaded_from_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        """Get config file path."""
        return self._config_path

    @property
    def loaded_from_path(self) -> Path | None:
        """Path the configuration was actually read from."""
        return self._loaded_from_path

    def load(self, path: str | Path | None = None) -> SnapverifyConfig:
        """Load and validate configuration.

        Args:
            path: Optional path overriding the one given to __init__

        Returns:
            Validated SnapverifyConfig

        Raises:
            ConfigurationError: If config is invalid
            FileNotFoundError: If config file not found
        """
        if path is not None:
            self._config_path = Path(path)

        load_env_file(self._env_file)

        raw: dict[str, Any] = {}
        if self._config_path:
            raw = self._load_yaml(self._config_path)
            self._loaded_from_path = self._config_path

        processed = self._substitute_env_vars(raw)
        processed = self._apply_env_overrides(processed)
        processed = self._clean_none_values(processed)

        try:
            return SnapverifyConfig(**processed)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e.error_count()} errors",
                errors=e.errors(),
                path=self._loaded_from_path,
            ) from e

    def load_from_env(self) -> SnapverifyConfig:
        """Load configuration from SNAPVERIFY_CONFIG or default locations.

        Returns:
            Validated SnapverifyConfig

        Raises:
            ConfigurationError: If config is invalid
            FileNotFoundError: If no config file is found
        """
        load_env_file(self._env_file)

        env_config_path = os.environ.get(CONFIG_ENV_VAR)
        if env_config_path:
            if not Path(env_config_path).exists():
                raise FileNotFoundError(
                    f"Config file specified by {CONFIG_ENV_VAR} not found: {env_config_path}"
                )
            return self.load(env_config_path)

        for default_path in DEFAULT_CONFIG_PATHS:
            if Path(default_path).exists():
                return self.load(default_path)

        searched = ", ".join(DEFAULT_CONFIG_PATHS)
        raise FileNotFoundError(
            f"No configuration file found. Searched: {searched}. "
            f"Set {CONFIG_ENV_VAR} or pass --config."
        )

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        """Parse a YAML file into a dict.

        Raises:
            FileNotFoundError: If file doesn't exist
            ConfigurationError: If YAML is invalid or not a mapping
        """
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}", path=path) from e

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping", path=path)
        return data

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute ${VAR} references."""
        if isinstance(data, dict):
            return {k: self._substitute_env_vars(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        if isinstance(data, str):
            return self._substitute_string(data)
        return data

    def _substitute_string(self, value: str) -> Any:
        """Substitute environment variables in a string.

        A string that is exactly one reference resolving to "" becomes None,
        so the field falls back to its default. Unresolved references are
        left in place and will fail validation if the field is required.
        Type conversion of the resolved text is left to Pydantic.
        """
        full_match = self.ENV_PATTERN.fullmatch(value)
        if full_match:
            env_value = os.environ.get(full_match.group(1))
            resolved = env_value if env_value is not None else full_match.group(2)
            if resolved is None:
                return value
            return resolved or None

        def replace(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return self.ENV_PATTERN.sub(replace, value)

    def _clean_none_values(self, data: Any) -> Any:
        """Drop None values so Pydantic falls back to defaults.

        YAML parses empty sections as None.
        """
        if isinstance(data, dict):
            return {k: self._clean_none_values(v) for k, v in data.items() if v is not None}
        if isinstance(data, list):
            return [self._clean_none_values(item) for item in data]
        return data

    def _apply_env_overrides(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Apply SNAPVERIFY_* overrides and environment secrets.

        Environment values take precedence over the config file. Empty
        values are ignored.
        """
        for env_var, config_path in ENV_VAR_OVERRIDES.items():
            env_value = os.environ.get(env_var)
            if env_value:
                self._set_nested_value(config_dict, config_path, env_value)

        for config_path, secret in secret_overrides().items():
            self._set_nested_value(config_dict, config_path, secret)

        return config_dict

    def _set_nested_value(self, config_dict: dict[str, Any], path: str, value: Any) -> None:
        """Set a nested value in a dictionary using dot notation."""
        parts = path.split(".")
        current = config_dict
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value


def load_config(
    config_path: str | Path | None = None,
    env_file: str = ".env",
) -> SnapverifyConfig:
    """Load configuration from a file, or discover one when no path is given.

    Args:
        config_path: Path to YAML config file
        env_file: Path to .env file

    Returns:
        Validated SnapverifyConfig

    Raises:
        ConfigurationError: If config validation fails
        FileNotFoundError: If config file not found
    """
    loader = ConfigLoader(config_path, env_file)
    if config_path is None:
        return loader.load_from_env()
    return loader.load()
