"""
Configuration data models.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import List, Mapping, Optional

from promql_poller.utils.errors import ConfigurationError


@dataclass(frozen=True)
class QueryDefinition:
    """A named PromQL query and the server it runs against."""
    name: str
    server: str
    expression: str
    interval: Optional[timedelta] = None

    def __post_init__(self):
        if self.interval is not None and self.interval <= timedelta(0):
            raise ConfigurationError(
                f"Query '{self.name}': interval must be positive, got {self.interval}"
            )

    @property
    def interval_seconds(self) -> Optional[float]:
        if self.interval is None:
            return None
        return self.interval.total_seconds()


@dataclass
class HTTPConfig:
    """HTTP client configuration."""
    timeout: float = 30.0


@dataclass
class SchedulerSettings:
    """Continuous polling configuration."""
    shutdown_timeout: float = 5.0  # seconds, 0 disables the drain on shutdown


@dataclass
class LoggingConfig:
    """Diagnostic logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    structured: bool = False


@dataclass
class PollerConfig:
    """Main configuration container."""
    queries: Mapping[str, QueryDefinition] = field(default_factory=lambda: MappingProxyType({}))
    http: HTTPConfig = field(default_factory=HTTPConfig)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        # Read-only for the lifetime of a scheduler
        if not isinstance(self.queries, MappingProxyType):
            self.queries = MappingProxyType(dict(self.queries))

    def validate(self) -> List[str]:
        """
        Validate configuration settings.

        Returns:
            List of validation errors, empty if valid
        """
        errors = []

        for name, query in self.queries.items():
            if not name:
                errors.append("Query name cannot be empty")
            if name != query.name:
                errors.append(f"Query '{name}' is registered under a different name '{query.name}'")
            if not query.server.startswith(("http://", "https://")):
                errors.append(f"Query '{name}': server must start with http:// or https://")
            if not query.expression.strip():
                errors.append(f"Query '{name}': expression cannot be empty")
            if query.interval is None:
                errors.append(f"Query '{name}': interval is required")

        if self.http.timeout <= 0:
            errors.append("HTTP timeout must be positive")

        if self.scheduler.shutdown_timeout < 0:
            errors.append("Shutdown timeout must be non-negative")

        return errors
