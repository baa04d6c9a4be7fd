"""Configuration management for the agent.

This module loads the YAML configuration file into an immutable record that is
built once at startup and passed explicitly into every component.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from anywhere_agent.errors import ConfigError

DEFAULT_CONFIG_FILE = "./config.yaml"
DEFAULT_LOG_DIR = "/var/log/aw_agent/"

DEFAULT_INSTALL_COMMAND = "curl -L https://github.com/v2fly/fhs-install-v2ray/raw/master/install-release.sh | bash -s -- --force"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}

LOG_LEVELS = ("debug", "info", "warn", "warning", "error")


def parse_duration(value: Any, field_name: str) -> timedelta:
    """Parse a duration setting.

    Args:
        value: Either a number of seconds or a string such as ``"30m"``, ``"10s"``, ``"250ms"``
        field_name: Dotted config key, used in error messages

    Returns:
        Parsed duration

    Raises:
        ConfigError: If the value cannot be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"{field_name}: expected a duration, got {value!r}")
    if isinstance(value, (int, float)):
        amount, unit = value, "s"
    else:
        match = _DURATION_RE.match(value) if isinstance(value, str) else None
        if match is None:
            raise ConfigError(f"{field_name}: invalid duration {value!r} (use e.g. 30s, 5m, 1h)")
        amount, unit = match.group(1), match.group(2) or "s"

    try:
        seconds = float(amount)
        if not math.isfinite(seconds):
            raise ConfigError(f"{field_name}: duration must be finite, got {value!r}")
        return seconds * _DURATION_UNITS[unit]
    except OverflowError as e:
        raise ConfigError(f"{field_name}: duration out of range: {value!r}") from e


@dataclass(frozen=True)
class V2RayConfig:
    """Monitored service settings."""

    port: int
    uuid: str
    access_log: str
    config_path: str = "/usr/local/etc/v2ray/config.json"
    error_log: str = "/var/log/v2ray/error.log"
    service_name: str = "v2ray"
    install_command: str = DEFAULT_INSTALL_COMMAND


@dataclass(frozen=True)
class ApiConfig:
    """HTTP control API settings."""

    address: str
    port: int
    jwt_secret: str
    shutdown_timeout: timedelta = timedelta(seconds=10)


@dataclass(frozen=True)
class ChecksConfig:
    """Periodic check settings.

    Attributes:
        idle_check_interval: Period of the idle/terminate loop
        idle_timeout: Inactivity after which the node is considered idle
        traffic_sample_interval: Period of the traffic-sampling loop (None disables it)
    """

    idle_check_interval: timedelta
    idle_timeout: timedelta
    traffic_sample_interval: timedelta | None = None


@dataclass(frozen=True)
class LogConfig:
    """Log file rotation settings."""

    level: str
    max_size: int
    max_backups: int
    max_age: int


@dataclass(frozen=True)
class AgentConfig:
    """Complete agent configuration."""

    v2ray: V2RayConfig
    api: ApiConfig
    checks: ChecksConfig
    log: LogConfig
    source: str | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentConfig":
        """Create configuration from dictionary.

        Args:
            data: Configuration dictionary (as parsed from YAML)

        Returns:
            AgentConfig instance

        Raises:
            ConfigError: If a value has the wrong type
        """
        v2ray_data = _section(data, "v2ray")
        api_data = _section(data, "api")
        checks_data = _section(data, "checks")
        log_data = _section(data, "log")

        try:
            v2ray = V2RayConfig(
                port=int(v2ray_data.get("port", 0)),
                uuid=str(v2ray_data.get("uuid", "")),
                access_log=str(v2ray_data.get("access_log", "")),
                config_path=str(v2ray_data.get("config_path", V2RayConfig.config_path)),
                error_log=str(v2ray_data.get("error_log", V2RayConfig.error_log)),
                service_name=str(v2ray_data.get("service_name", V2RayConfig.service_name)),
                install_command=str(v2ray_data.get("install_command", DEFAULT_INSTALL_COMMAND)),
            )
            api = ApiConfig(
                address=str(api_data.get("address", "")),
                port=int(api_data.get("port", 0)),
                jwt_secret=str(api_data.get("jwt_secret", "")),
                shutdown_timeout=parse_duration(api_data.get("shutdown_timeout", 10), "api.shutdown_timeout"),
            )
            log = LogConfig(
                level=str(log_data.get("level", "")).lower(),
                max_size=int(log_data.get("max_size", 0)),
                max_backups=int(log_data.get("max_backups", 0)),
                max_age=int(log_data.get("max_age", 0)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        sample_interval = checks_data.get("traffic_sample_interval")
        checks = ChecksConfig(
            idle_check_interval=parse_duration(checks_data.get("idle_check_interval", 0), "checks.idle_check_interval"),
            idle_timeout=parse_duration(checks_data.get("idle_timeout", 0), "checks.idle_timeout"),
            traffic_sample_interval=parse_duration(sample_interval, "checks.traffic_sample_interval") if sample_interval else None,
        )

        return cls(v2ray=v2ray, api=api, checks=checks, log=log)

    @classmethod
    def from_file(cls, file_path: Path | str) -> "AgentConfig":
        """Load and validate configuration from a YAML file.

        Args:
            file_path: Path to configuration file

        Returns:
            AgentConfig instance

        Raises:
            ConfigError: If the file is missing, unreadable, or invalid
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise ConfigError(f"config file not found: {file_path}")

        try:
            with open(file_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config file: {e}") from e
        except OSError as e:
            raise ConfigError(f"failed to read config file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("config file is empty or not a mapping")

        config = cls.from_dict(data)
        errors = config.validate()
        if errors:
            raise ConfigError("; ".join(errors))

        return cls(v2ray=config.v2ray, api=config.api, checks=config.checks, log=config.log, source=str(file_path))

    def validate(self) -> list[str]:
        """Validate the configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors: list[str] = []

        if self.v2ray.port <= 0:
            errors.append("v2ray.port is required")
        elif self.v2ray.port > 65535:
            errors.append(f"v2ray.port out of range: {self.v2ray.port}")
        if not self.v2ray.uuid:
            errors.append("v2ray.uuid is required")
        if not self.v2ray.access_log:
            errors.append("v2ray.access_log is required")

        if not self.api.address:
            errors.append("api.address is required")
        if self.api.port <= 0:
            errors.append("api.port is required")
        elif self.api.port > 65535:
            errors.append(f"api.port out of range: {self.api.port}")
        if not self.api.jwt_secret:
            errors.append("api.jwt_secret is required")

        if self.checks.idle_check_interval <= timedelta(0):
            errors.append("checks.idle_check_interval is required")
        if self.checks.idle_timeout <= timedelta(0):
            errors.append("checks.idle_timeout is required")

        if not self.log.level:
            errors.append("log.level is required")
        elif self.log.level not in LOG_LEVELS:
            errors.append(f"log.level must be one of debug, info, warn, error (got {self.log.level})")
        if self.log.max_size <= 0:
            errors.append("log.max_size is required")
        if self.log.max_backups <= 0:
            errors.append("log.max_backups is required")
        if self.log.max_age <= 0:
            errors.append("log.max_age is required")

        return errors


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name}: expected a mapping")
    return section
