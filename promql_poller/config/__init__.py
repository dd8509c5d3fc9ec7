"""
Configuration management for the PromQL poller.
"""

from .models import (
    QueryDefinition,
    PollerConfig,
    HTTPConfig,
    SchedulerSettings,
    LoggingConfig
)
from .manager import ConfigManager, DEFAULT_CONFIG_PATH
from .validation import (
    PollerConfigValidator,
    QueryConfigValidator,
    validate_config_dict,
    get_env_var_mappings,
    parse_duration
)

__all__ = [
    # Models
    'QueryDefinition',
    'PollerConfig',
    'HTTPConfig',
    'SchedulerSettings',
    'LoggingConfig',

    # Manager
    'ConfigManager',
    'DEFAULT_CONFIG_PATH',

    # Validation
    'PollerConfigValidator',
    'QueryConfigValidator',
    'validate_config_dict',
    'get_env_var_mappings',
    'parse_duration',
]
