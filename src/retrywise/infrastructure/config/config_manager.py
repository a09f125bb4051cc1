"""Configuration manager for loading and validating .retrywise.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from retrywise.domain.config import AppConfig, HttpConfig, RetryConfig
from retrywise.domain.policies import POLICY_PRESETS, RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".retrywise.yml"


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


class ConfigManager:
    """Manages configuration from .retrywise.yml and environment variables

    Loads configuration with validation using Pydantic models. Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .retrywise.yml file (searched from current directory upwards)
    3. Environment variables (RETRYWISE_*)
    4. CLI arguments (handled by CLI layer)
    """

    # Base configuration; file values are merged over it per key
    DEFAULT_CONFIG = {
        "retry": {
            "default": {"max_retries": 3, "base_delay": 0.5, "max_delay": 5.0, "backoff_factor": 2.0},
            "data_access": {"max_retries": 3, "base_delay": 0.5, "max_delay": 5.0, "backoff_factor": 2.0},
            "auth": {"max_retries": 2, "base_delay": 1.0, "max_delay": 5.0, "backoff_factor": 2.0},
            "dashboard": {"max_retries": 1, "base_delay": 0.2, "max_delay": 1.0, "backoff_factor": 2.0},
        },
        "http": {
            "base_url": None,
            "timeout": 10.0,
            "headers": {},
        },
    }

    # Environment variable -> (section path, converter)
    ENV_OVERRIDES: Dict[str, tuple] = {
        "RETRYWISE_MAX_RETRIES": (("retry", "default", "max_retries"), int),
        "RETRYWISE_BASE_DELAY": (("retry", "default", "base_delay"), float),
        "RETRYWISE_MAX_DELAY": (("retry", "default", "max_delay"), float),
        "RETRYWISE_BACKOFF_FACTOR": (("retry", "default", "backoff_factor"), float),
        "RETRYWISE_BASE_URL": (("http", "base_url"), str),
        "RETRYWISE_HTTP_TIMEOUT": (("http", "timeout"), float),
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .retrywise.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                msg = error["msg"]
                errors.append(f"  - {field}: {msg}")
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(errors)
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .retrywise.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        """Load configuration from file and validate with Pydantic

        An unreadable or malformed file is logged and ignored.

        Raises:
            ValidationError: If configuration is invalid
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
                if not isinstance(file_config, dict):
                    raise ValueError("top level must be a mapping")
                config_dict = self._merge_config(config_dict, file_config)
                logger.info(f"Loaded configuration from {self.config_path}")
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.info("Using default configuration")

        config_dict = self._apply_env_overrides(config_dict)
        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries"""
        result = copy.deepcopy(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply RETRYWISE_* environment variable overrides

        Raises:
            ConfigurationError: If a variable cannot be converted
        """
        for env_name, (path, convert) in self.ENV_OVERRIDES.items():
            raw = os.getenv(env_name)
            if not raw:
                continue
            try:
                value = convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from e
            section = config
            for key in path[:-1]:
                if not isinstance(section.get(key), dict):
                    section[key] = {}
                section = section[key]
            section[path[-1]] = value
            logger.debug(f"Applied {env_name} override")
        return config

    def get_retry_config(self, variant: str = "default") -> RetryConfig:
        """Get retry profile configuration

        Args:
            variant: Profile name (default, data_access, auth, dashboard)

        Returns:
            Retry configuration model

        Raises:
            ValueError: If the profile name is unknown
        """
        key = variant.lower()
        if key not in POLICY_PRESETS:
            available = ", ".join(POLICY_PRESETS.keys())
            raise ValueError(f"Unknown retry policy: {variant}. Available policies: {available}")
        return getattr(self.config.retry, key)

    def get_policy(self, variant: str = "default") -> RetryPolicy:
        """Get a runtime RetryPolicy for a profile, with the profile's predicate"""
        return self.get_retry_config(variant).to_policy(name=variant.lower())

    def get_http_config(self) -> HttpConfig:
        """Get HTTP configuration

        Returns:
            HTTP configuration model
        """
        return self.config.http

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., "retry.auth.max_retries" or "http")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value = self.config.model_dump()
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
