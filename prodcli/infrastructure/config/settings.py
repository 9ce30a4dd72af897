"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.config/prodcli/config.yaml).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "prodcli"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
DEFAULT_BASE_URL = "https://api.productive.io/api/v2"
CACHE_NAMESPACE = "productive-cli"

# Upstream documented quotas, per limiter class
DEFAULT_RATE_LIMITS: Dict[str, Dict[str, int]] = {
    "regular": {"limit": 100, "window_ms": 10_000, "max_retries": 5, "base_delay_ms": 1000},
    "reports": {"limit": 10, "window_ms": 30_000, "max_retries": 5, "base_delay_ms": 1000},
}

_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("No .env file found at or above current directory.")

    _loaded = True


def reset_configuration() -> None:
    """Forgets loaded configuration so the next load re-reads the sources."""
    global _config, _loaded
    _config = {}
    _loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML mappings into dotted keys ('rate_limit.regular.limit')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def _coerce(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by key.

    Priority:
    1. Test configuration
    2. Environment variable ('rate_limit.regular.limit' -> RATE_LIMIT_REGULAR_LIMIT)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace(".", "_")
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def get_api_token() -> Optional[str]:
    token = get_config("productive_api_token") or get_config("api.token")
    return str(token) if token else None


def get_org_id() -> Optional[str]:
    org_id = get_config("productive_org_id") or get_config("api.org_id")
    return str(org_id) if org_id else None


def get_base_url() -> str:
    return str(get_config("productive_base_url") or get_config("api.base_url", DEFAULT_BASE_URL))


def get_cache_root() -> Path:
    """Root directory for persisted caches.

    PRODUCTIVE_CACHE_DIR wins; otherwise $XDG_CACHE_HOME/productive-cli, falling back
    to ~/.cache/productive-cli.
    """
    explicit = get_config("productive_cache_dir")
    if explicit:
        return Path(str(explicit)).expanduser()
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / CACHE_NAMESPACE


def get_rate_limit_settings() -> Dict[str, Dict[str, int]]:
    """Per-class limiter settings with config overrides applied."""
    settings: Dict[str, Dict[str, int]] = {}
    for name, defaults in DEFAULT_RATE_LIMITS.items():
        settings[name] = {
            field: int(get_config(f"rate_limit.{name}.{field}", default))
            for field, default in defaults.items()
        }
    return settings


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override any existing configuration.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
