"""
Configuration validation using Pydantic.
"""

import math
import re
from datetime import timedelta
from typing import Any, Dict, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from promql_poller.utils.errors import ConfigurationError

_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h|d)')

_UNIT_SECONDS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
    'd': 86400.0,
}

_LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG')


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a duration such as '30s', '1m30s', '500ms' or '2h'.

    Plain numbers (or numeric strings) are taken as seconds.

    Raises:
        ValueError: If the value is not a recognised duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    if not text:
        raise ValueError("Duration cannot be empty")

    try:
        seconds = float(text)
    except ValueError:
        seconds = None
    if seconds is not None:
        if not math.isfinite(seconds):
            raise ValueError(f"Invalid duration: {value!r}")
        return timedelta(seconds=seconds)

    sign = 1
    if text[0] in '+-':
        sign = -1 if text[0] == '-' else 1
        text = text[1:]

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(
            f"Invalid duration: {value!r}. Expected e.g. '30s', '1m30s', '500ms' or '1h'"
        )

    return timedelta(seconds=sign * total)


class QueryConfigValidator(BaseModel):
    """Pydantic model for a single query entry."""
    server: str = Field(description="Base URL of the Prometheus query API")
    expression: str = Field(
        validation_alias=AliasChoices('promql', 'expression', 'query'),
        description="PromQL expression"
    )
    interval: timedelta = Field(description="Polling interval")

    model_config = {
        "extra": "forbid",
    }

    @field_validator('server')
    @classmethod
    def validate_server(cls, v):
        """Validate server base URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError("Server URL must start with http:// or https://")
        return v.rstrip('/')

    @field_validator('expression')
    @classmethod
    def validate_expression(cls, v):
        if not v.strip():
            raise ValueError("Query expression cannot be empty")
        return v

    @field_validator('interval', mode='before')
    @classmethod
    def validate_interval(cls, v):
        """Parse the interval and reject zero or negative durations."""
        interval = parse_duration(v)
        if interval <= timedelta(0):
            raise ValueError(f"Interval must be positive: {v}")
        return interval


class HTTPConfigValidator(BaseModel):
    """Pydantic model for HTTP client configuration."""
    timeout: float = Field(default=30.0, gt=0, le=3600, description="Request timeout in seconds")


class SchedulerConfigValidator(BaseModel):
    """Pydantic model for scheduler configuration."""
    shutdown_timeout: float = Field(
        default=5.0,
        ge=0,
        le=3600,
        description="Seconds to wait for in-flight queries on shutdown"
    )


class LoggingConfigValidator(BaseModel):
    """Pydantic model for diagnostic logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    file: Optional[str] = Field(default=None, description="Optional log file path")
    structured: bool = Field(default=False, description="Emit JSON structured logs")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level


class PollerConfigValidator(BaseModel):
    """Main configuration validator."""
    queries: Dict[str, QueryConfigValidator] = Field(default_factory=dict)
    http: HTTPConfigValidator = Field(default_factory=HTTPConfigValidator)
    scheduler: SchedulerConfigValidator = Field(default_factory=SchedulerConfigValidator)
    logging: LoggingConfigValidator = Field(default_factory=LoggingConfigValidator)

    model_config = {
        "validate_assignment": True,
        "extra": "forbid",  # Prevent extra fields
    }

    @model_validator(mode='before')
    @classmethod
    def replace_null_sections(cls, data):
        """Treat empty YAML sections (``queries:``) as absent."""
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator('queries')
    @classmethod
    def validate_query_names(cls, v):
        for name in v:
            if not str(name).strip():
                raise ValueError("Query name cannot be empty")
        return v

    def to_poller_config(self) -> 'PollerConfig':
        """Convert to the dataclass configuration used at runtime."""
        from promql_poller.config.models import (
            PollerConfig, QueryDefinition, HTTPConfig, SchedulerSettings, LoggingConfig
        )

        return PollerConfig(
            queries={
                name: QueryDefinition(
                    name=name,
                    server=query.server,
                    expression=query.expression,
                    interval=query.interval
                )
                for name, query in self.queries.items()
            },
            http=HTTPConfig(timeout=self.http.timeout),
            scheduler=SchedulerSettings(shutdown_timeout=self.scheduler.shutdown_timeout),
            logging=LoggingConfig(
                level=self.logging.level,
                file=self.logging.file,
                structured=self.logging.structured
            )
        )


def validate_config_dict(config_data: Dict[str, Any]) -> PollerConfigValidator:
    """
    Validate configuration dictionary using Pydantic.

    Args:
        config_data: Configuration dictionary

    Returns:
        Validated configuration object

    Raises:
        ConfigurationError: If validation fails
    """
    if not isinstance(config_data, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(config_data).__name__}"
        )
    try:
        return PollerConfigValidator(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def get_env_var_mappings() -> Dict[str, str]:
    """
    Get mapping of environment variables to configuration paths.

    Returns:
        Dictionary mapping environment variable names to config paths
    """
    return {
        'PROMQL_POLLER_HTTP_TIMEOUT': 'http.timeout',
        'PROMQL_POLLER_SHUTDOWN_TIMEOUT': 'scheduler.shutdown_timeout',
        'PROMQL_POLLER_LOG_LEVEL': 'logging.level',
        'PROMQL_POLLER_LOG_FILE': 'logging.file',
        'PROMQL_POLLER_STRUCTURED_LOGS': 'logging.structured',
    }
