"""
Configuration manager: loads the query configuration file once at startup.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

from promql_poller.config.models import PollerConfig
from promql_poller.config.validation import validate_config_dict, get_env_var_mappings
from promql_poller.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

EXAMPLE_CONFIG: Dict[str, Any] = {
    'queries': {
        'up': {
            'server': 'http://localhost:9090',
            'promql': 'up',
            'interval': '30s',
        },
        'scrape_duration': {
            'server': 'http://localhost:9090',
            'promql': 'sum(scrape_duration_seconds) by (job)',
            'interval': '1m',
        },
    },
    'http': {
        'timeout': 30,
    },
    'scheduler': {
        'shutdown_timeout': 5,
    },
    'logging': {
        'level': 'INFO',
        'file': None,
        'structured': False,
    },
}


class ConfigManager:
    """
    Configuration manager.

    Supports YAML and JSON configuration files with environment variable
    overrides. The configuration is read once; it is never reloaded while
    queries are being polled.
    """

    def __init__(self, config_file_path: str = DEFAULT_CONFIG_PATH):
        """
        Initialize configuration manager.

        Args:
            config_file_path: Path to the configuration file
        """
        self.config_file_path = os.path.abspath(config_file_path)
        self._config: Optional[PollerConfig] = None
        self._validation_errors: list[str] = []

    def load_config(self) -> PollerConfig:
        """
        Load configuration from file with environment variable overrides.

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        if not os.path.exists(self.config_file_path):
            error = ConfigurationError(f"Configuration file not found: {self.config_file_path}")
            self._validation_errors = [str(error)]
            raise error

        try:
            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            validated_config = validate_config_dict(config_data)
            config = validated_config.to_poller_config()
        except ConfigurationError as e:
            self._validation_errors = [str(e)]
            raise

        errors = config.validate()
        if errors:
            self._validation_errors = errors
            raise ConfigurationError("; ".join(errors))

        self._config = config
        self._validation_errors = []
        logger.debug(
            "Loaded %d queries from %s", len(config.queries), self.config_file_path
        )
        return config

    def get_config(self) -> PollerConfig:
        """
        Get current configuration, loading if necessary.

        Returns:
            Current configuration
        """
        if self._config is None:
            return self.load_config()
        return self._config

    def get_validation_errors(self) -> list[str]:
        """Get the errors from the last load attempt."""
        return self._validation_errors.copy()

    def validate_config_file(self) -> tuple[bool, list[str]]:
        """
        Validate configuration file without keeping the result.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        if not os.path.exists(self.config_file_path):
            return False, ["Configuration file does not exist"]

        try:
            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            config = validate_config_dict(config_data).to_poller_config()
        except ConfigurationError as e:
            return False, [str(e)]

        errors = config.validate()
        return not errors, errors

    def create_default_config(self, force: bool = False) -> str:
        """
        Write an example configuration file.

        Args:
            force: Overwrite an existing file

        Returns:
            Path of the written file

        Raises:
            ConfigurationError: If the file exists and force is not set
        """
        if os.path.exists(self.config_file_path) and not force:
            raise ConfigurationError(
                f"Configuration file {self.config_file_path} already exists"
            )

        config_dir = os.path.dirname(self.config_file_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(self.config_file_path, 'w') as f:
            if self._is_json():
                json.dump(EXAMPLE_CONFIG, f, indent=2)
                f.write("\n")
            else:
                yaml.safe_dump(EXAMPLE_CONFIG, f, default_flow_style=False, indent=2, sort_keys=False)

        return self.config_file_path

    def _is_json(self) -> bool:
        return self.config_file_path.endswith('.json')

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration data from file."""
        path = self.config_file_path
        if not path.endswith(('.yaml', '.yml', '.json')):
            raise ConfigurationError(f"Unsupported config file format: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if self._is_json():
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot parse configuration file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        return data

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, config_path_str in get_env_var_mappings().items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue

            # e.g. "http.timeout" -> ["http", "timeout"]
            config_path = config_path_str.split('.')

            current = config_data
            for key in config_path[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]

            current[config_path[-1]] = self._convert_env_value(env_var, env_value)

        return config_data

    def _convert_env_value(self, env_var: str, env_value: str) -> Any:
        """Convert environment variable value to appropriate type."""
        if env_var in ['PROMQL_POLLER_HTTP_TIMEOUT', 'PROMQL_POLLER_SHUTDOWN_TIMEOUT']:
            try:
                return float(env_value)
            except ValueError as e:
                raise ConfigurationError(f"{env_var} must be a number, got {env_value!r}") from e

        elif env_var in ['PROMQL_POLLER_STRUCTURED_LOGS']:
            return env_value.lower() in ('true', '1', 'yes', 'on')

        else:
            return env_value
