"""
Configuration module for the pod sync controller.

Loads configuration from environment variables. Every value can be
overridden by a command line flag (see main.py); overrides are passed to
Config.from_env() as a dict keyed by field name.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}

TRUE_VALUES = {"1", "true", "yes", "y", "on"}

# Levels understood by both logging and uvicorn
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and unit strings such as "90s", "5m"
    or "1h30m".

    Raises:
        ValueError: If the value is not a positive duration
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            if not text or DURATION_PATTERN.sub("", text):
                raise ValueError(f"Invalid duration: '{value}'")
            seconds = sum(
                float(amount) * DURATION_UNITS[unit]
                for amount, unit in DURATION_PATTERN.findall(text)
            )
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: '{value}'")
    return seconds


def parse_listen_address(value: str) -> Tuple[str, int]:
    """
    Parse "host:port", ":port" or "port" into (host, port).

    An empty host binds all interfaces.
    """
    text = str(value).strip()
    host, sep, port = text.rpartition(":")
    if not sep:
        host, port = "", text
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid listen address: '{value}'")
    if not 0 < port_number < 65536:
        raise ValueError(f"Listen port out of range: '{value}'")
    return host or "0.0.0.0", port_number


def _setting(
    overrides: Optional[Dict[str, Any]], key: str, env: str, default: Any = None
) -> Any:
    """Return the override for key if given, else the env var, else default."""
    if overrides and overrides.get(key) is not None:
        return overrides[key]
    return os.getenv(env, default)


def parse_log_level(value: Any) -> str:
    """
    Normalize a log level name to upper case.

    Raises:
        ValueError: If the level is unknown
    """
    level = str(value).strip().upper()
    level = LOG_LEVEL_ALIASES.get(level, level)
    if level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: '{value}' (expected one of "
            f"{', '.join(sorted(LOG_LEVELS))})"
        )
    return level


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got '{value}'")


@dataclass
class GatewayConfig:
    """JumpServer gateway configuration."""

    host: str = ""
    username: str = ""
    password: str = field(default="", repr=False)  # Never log password
    platform: str = "Linux"
    admin_user: str = ""
    bind_principal: str = ""
    request_timeout: float = 30
    page_size: int = 65535

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None):
        """Load from environment variables."""
        host = _setting(overrides, "host", "JMS_HOST", "")
        username = _setting(overrides, "username", "JMS_USERNAME", "")
        password = _setting(overrides, "password", "JMS_PASSWORD", "")
        if not host:
            raise ValueError("Gateway host must be set (--host or JMS_HOST)")
        if not username:
            raise ValueError("Gateway username must be set (--username or JMS_USERNAME)")
        if not password:
            raise ValueError(
                "Gateway password must be set (--password or JMS_PASSWORD). "
                "Password cannot be empty."
            )

        return cls(
            host=host,
            username=username,
            password=password,
            platform=_setting(overrides, "platform", "JMS_ASSET_PLATFORM", "Linux"),
            admin_user=_setting(overrides, "admin_user", "JMS_ADMIN_USER", ""),
            bind_principal=_setting(
                overrides, "bind_principal", "JMS_BIND_PRINCIPAL", ""
            ),
            request_timeout=parse_duration(
                _setting(overrides, "gateway_timeout", "JMS_REQUEST_TIMEOUT", "30")
            ),
            page_size=_as_int(
                _setting(overrides, "page_size", "JMS_PAGE_SIZE", "65535"),
                "JMS_PAGE_SIZE",
            ),
        )


@dataclass
class ClusterConfig:
    """Kubernetes discovery configuration."""

    namespace: str = ""  # empty = all namespaces
    label_selector: str = "ssh.port/open=true"
    ssh_port_name_prefix: str = "ssh"
    kubeconfig: str = field(
        default_factory=lambda: os.path.expanduser("~/.kube/config")
    )
    max_results: int = 65535
    request_timeout: float = 30

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None):
        """Load from environment variables."""
        kubeconfig = _setting(
            overrides, "kubeconfig", "KUBECONFIG", "~/.kube/config"
        )
        return cls(
            namespace=_setting(overrides, "namespace", "K8S_NAMESPACE", ""),
            label_selector=_setting(
                overrides, "label", "K8S_LABEL_SELECTOR", "ssh.port/open=true"
            ),
            ssh_port_name_prefix=_setting(
                overrides, "ssh_port_name_prefix", "SSH_PORT_NAME_PREFIX", "ssh"
            ),
            kubeconfig=os.path.expandvars(os.path.expanduser(kubeconfig)),
            max_results=_as_int(
                _setting(overrides, "max_results", "K8S_MAX_RESULTS", "65535"),
                "K8S_MAX_RESULTS",
            ),
            request_timeout=parse_duration(
                _setting(overrides, "cluster_timeout", "K8S_REQUEST_TIMEOUT", "30")
            ),
        )


@dataclass
class ControllerConfig:
    """Controller reconciliation loop configuration."""

    sync_interval: float = 60  # seconds
    max_concurrent_operations: int = 4
    dry_run: bool = False

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None):
        """Load from environment variables."""
        max_concurrent = _as_int(
            _setting(
                overrides, "max_concurrency", "MAX_CONCURRENT_OPERATIONS", "4"
            ),
            "MAX_CONCURRENT_OPERATIONS",
        )
        if max_concurrent < 1:
            raise ValueError("MAX_CONCURRENT_OPERATIONS must be at least 1")
        return cls(
            sync_interval=parse_duration(
                _setting(overrides, "interval", "SYNC_INTERVAL", "1m")
            ),
            max_concurrent_operations=max_concurrent,
            dry_run=_as_bool(_setting(overrides, "dry_run", "DRY_RUN", "false")),
        )


@dataclass
class APIConfig:
    """Liveness HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None):
        """Load from environment variables."""
        host, port = parse_listen_address(
            _setting(overrides, "port", "LISTEN_ADDRESS", ":8080")
        )
        return cls(
            host=host,
            port=port,
            log_level=parse_log_level(
                _setting(overrides, "log_level", "LOG_LEVEL", "INFO")
            ),
        )


@dataclass
class Config:
    """Main configuration object."""

    gateway: GatewayConfig
    cluster: ClusterConfig
    controller: ControllerConfig
    api: APIConfig

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None):
        """Load all configuration from environment variables and overrides."""
        return cls(
            gateway=GatewayConfig.from_env(overrides),
            cluster=ClusterConfig.from_env(overrides),
            controller=ControllerConfig.from_env(overrides),
            api=APIConfig.from_env(overrides),
        )
