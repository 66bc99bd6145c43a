"""
Snapverify - Configuration Management

This module provides configuration management including:
- YAML configuration loading and validation
- Environment variable and .env handling
- Typed sections for the cluster, repositories, probes, timeouts,
  retention, notifications and logging
"""

from snapverify.config.environment import (
    SECRET_ENV_VARS,
    load_env_file,
    secret_overrides,
)
from snapverify.config.loader import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATHS,
    ENV_VAR_OVERRIDES,
    ConfigLoader,
    ConfigurationError,
    load_config,
)
from snapverify.config.models import (
    ClusterConfig,
    LoggingConfig,
    LogLevel,
    NotificationConfig,
    ProbeConfig,
    RepositoryConfig,
    RetentionConfig,
    SnapverifyConfig,
    TimeoutsConfig,
)

__all__ = [
    # Config models
    "ClusterConfig",
    "RepositoryConfig",
    "ProbeConfig",
    "TimeoutsConfig",
    "RetentionConfig",
    "NotificationConfig",
    "LogLevel",
    "LoggingConfig",
    "SnapverifyConfig",
    # Loader
    "ConfigLoader",
    "ConfigurationError",
    "load_config",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATHS",
    "ENV_VAR_OVERRIDES",
    # Environment
    "SECRET_ENV_VARS",
    "load_env_file",
    "secret_overrides",
]
