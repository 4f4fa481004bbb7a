"""
Configuration for the HTTP service discovery adapter.

Settings are read from the environment (``HTTP_SD_`` prefix), optionally
overlaid by a YAML file and finally by command-line flags.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class HTTPSDError(Exception):
    """Base exception for the HTTP discovery adapter."""
    pass


class ConfigurationError(HTTPSDError):
    """Configuration is unusable; nothing must be started."""
    pass


class CoordinationPolicy(str, Enum):
    """What stopping one discovery loop does to the others."""
    INDEPENDENT = "independent"  # only the root signal stops every loop
    CASCADE = "cascade"          # any loop stopping stops all of them


class DiscoveryConfig(BaseModel):
    """One discovery source: an endpoint and where its targets go."""

    api_url: str = Field(
        ...,
        min_length=1,
        description="URL polled for the target list"
    )
    output_file: str = Field(
        ...,
        min_length=1,
        description="Destination handed to the downstream writer"
    )
    refresh_interval: int = Field(
        default=60,
        ge=1,
        description="Seconds between polls, also the retry delay"
    )

    model_config = ConfigDict(frozen=True)


def pair_sources(
    api_urls: Sequence[str],
    output_files: Sequence[str],
    refresh_interval: int,
) -> list[DiscoveryConfig]:
    """
    Pair endpoints with output destinations, one source per pair.

    Raises:
        ConfigurationError: If the lists differ in length or a value is invalid
    """
    if len(api_urls) != len(output_files):
        raise ConfigurationError(
            "The number of options differs between --api.url and --output.file "
            f"({len(api_urls)} != {len(output_files)})"
        )

    try:
        return [
            DiscoveryConfig(
                api_url=url,
                output_file=output_file,
                refresh_interval=refresh_interval,
            )
            for url, output_file in zip(api_urls, output_files)
        ]
    except ValueError as e:
        raise ConfigurationError(f"Invalid discovery source: {e}") from e


class ServiceConfig(BaseSettings):
    """Process-level configuration."""

    # ========================================================================
    # Discovery
    # ========================================================================

    api_urls: list[str] = Field(
        default_factory=lambda: ["http://localhost:8080"],
        description="URLs the HTTP API sd is listening on for requests"
    )
    output_files: list[str] = Field(
        default_factory=lambda: ["custom_sd.json"],
        description="Output files for file_sd compatible targets"
    )
    refresh_interval: int = Field(
        default=60,
        ge=1,
        description="Refresh interval to re-read the instance list"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Total timeout of one discovery request in seconds"
    )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    coordination_policy: CoordinationPolicy = Field(
        default=CoordinationPolicy.INDEPENDENT,
        description="Whether one loop stopping stops its siblings"
    )
    shutdown_grace: float = Field(
        default=5.0,
        ge=0,
        description="Seconds loops get to stop on their own at shutdown"
    )

    # ========================================================================
    # Metrics
    # ========================================================================

    metrics_addr: str = Field(
        default=":8080",
        description="Address to bind the metrics server to"
    )
    metrics_path: str = Field(
        default="/metrics",
        description="Path to serve metrics on"
    )

    # ========================================================================
    # Logging
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level"
    )

    model_config = SettingsConfigDict(
        env_prefix="HTTP_SD_",
        validate_assignment=True,
        extra="forbid",
    )

    @field_validator('metrics_addr')
    @classmethod
    def validate_metrics_addr(cls, v):
        _, sep, port = v.rpartition(':')
        if not sep or not port.isdigit() or int(port) > 65535:
            raise ValueError('metrics_addr must be [host]:port')
        return v

    @field_validator('metrics_path')
    @classmethod
    def validate_metrics_path(cls, v):
        if not v.startswith('/'):
            raise ValueError('metrics_path must start with /')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, ERROR or CRITICAL')
        return v

    @property
    def metrics_host(self) -> str:
        """Host part of metrics_addr, all interfaces when empty."""
        host, _, _ = self.metrics_addr.rpartition(':')
        return host.strip('[]') or '0.0.0.0'

    @property
    def metrics_port(self) -> int:
        return int(self.metrics_addr.rpartition(':')[2])

    def discovery_configs(self) -> list[DiscoveryConfig]:
        """Validated per-source configuration."""
        return pair_sources(self.api_urls, self.output_files, self.refresh_interval)

    @classmethod
    def from_yaml(cls, path: Path) -> "ServiceConfig":
        """Load configuration from a YAML file over env/default values."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse config file {path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        values = {}

        if "discovery" in data:
            d = data["discovery"] or {}
            if "api_urls" in d:
                values["api_urls"] = d["api_urls"]
            if "output_files" in d:
                values["output_files"] = d["output_files"]
            if "refresh_interval" in d:
                values["refresh_interval"] = d["refresh_interval"]
            if "request_timeout" in d:
                values["request_timeout"] = d["request_timeout"]
            if "coordination_policy" in d:
                values["coordination_policy"] = d["coordination_policy"]
            if "shutdown_grace" in d:
                values["shutdown_grace"] = d["shutdown_grace"]

        if "metrics" in data:
            m = data["metrics"] or {}
            if "addr" in m:
                values["metrics_addr"] = m["addr"]
            if "path" in m:
                values["metrics_path"] = m["path"]

        if "log_level" in data:
            values["log_level"] = data["log_level"]

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    def override(self, **values) -> "ServiceConfig":
        """Apply non-None overrides, e.g. from command-line flags."""
        for name, value in values.items():
            if value is None:
                continue
            try:
                setattr(self, name, value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {name}: {e}") from e
        return self


# Example http_sd.yaml:
"""
discovery:
  api_urls:
    - "http://inventory.local:8080/targets"
    - "http://cmdb.local/api/sd"
  output_files:
    - "/etc/prometheus/sd/inventory.json"
    - "/etc/prometheus/sd/cmdb.json"
  refresh_interval: 60
  request_timeout: 30
  coordination_policy: independent

metrics:
  addr: ":8080"
  path: "/metrics"

log_level: "INFO"
"""
