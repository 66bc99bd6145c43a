"""
Environment Variable Handling.

Loads .env files with python-dotenv so that ${VAR} references in the
YAML configuration and SNAPVERIFY_* overrides can be kept out of the
config file (API keys, DSNs, cluster passwords).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Secrets that may be supplied only through the environment.
# Maps env var name to config path (dot-separated)
SECRET_ENV_VARS = {
    "PAGERDUTY_API_KEY": "notifications.pagerduty_api_key",
    "SENTRY_DSN": "notifications.sentry_dsn",
    "ELASTICSEARCH_PASSWORD": "cluster.password",
}


def load_env_file(env_file: str | Path = ".env") -> bool:
    """Load a .env file into os.environ without overriding existing values.

    Args:
        env_file: Path to .env file (relative or absolute)

    Returns:
        True if a file was found and loaded
    """
    path = Path(env_file)
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.exists():
        return False
    return load_dotenv(path, override=False)


def secret_overrides() -> dict[str, str]:
    """Collect secret values present in the environment.

    Returns:
        Config path -> value for every secret env var that is set
    """
    return {
        config_path: os.environ[env_var]
        for env_var, config_path in SECRET_ENV_VARS.items()
        if os.environ.get(env_var)
    }
