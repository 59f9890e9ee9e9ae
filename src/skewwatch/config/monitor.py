"""Monitor configuration loader.

Merges environment settings with command-line overrides and validates the
result into an immutable MonitorConfig. The host set is fixed here for the
whole process lifetime: entries are trimmed, deduplicated and sorted so that
every report lists hosts in the same order.

Durations use Go-style notation:
"300ms", "1.5h", "2h45m", "1m30s", or a bare "0".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from skewwatch.config.settings import Settings
from skewwatch.errors import ConfigError

HOST_KEY_POLICIES = ("reject", "warn", "auto-add")
LOG_FORMATS = ("console", "json")

_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


@dataclass(frozen=True)
class MonitorConfig:
    hosts: Tuple[str, ...]
    user: str
    interval: float
    alert: Optional[str] = None
    port: int = 22
    connect_timeout: float = 10.0
    host_key_policy: str = "warn"
    log_level: str = "INFO"
    log_format: str = "console"


def parse_duration(raw: str) -> float:
    """Parse a Go-style duration string into seconds."""
    text = raw.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"Invalid duration {raw!r}")
    return sign * total


def parse_host_list(raw: str) -> Tuple[str, ...]:
    """Split a comma separated host list into a sorted, deduplicated tuple."""
    if not raw or not raw.strip():
        raise ConfigError(f"No hosts: {raw!r}")
    hosts = set()
    for entry in raw.split(","):
        host = entry.strip()
        if not host:
            raise ConfigError(f"Empty host in list: {raw!r}")
        hosts.add(host)
    return tuple(sorted(hosts))


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid environment settings: {exc}") from exc


def load_monitor_config(settings: Optional[Settings] = None, **overrides: Any) -> MonitorConfig:
    """Build a MonitorConfig from settings, with non-None overrides taking precedence.

    Override keys: hosts, user, sleep, alert, port, connect_timeout,
    host_key_policy, log_level, log_format.
    """
    settings = settings or load_settings()
    values: Dict[str, Any] = {
        "hosts": settings.SKEWWATCH_HOSTS,
        "user": settings.SKEWWATCH_USER,
        "sleep": settings.SKEWWATCH_SLEEP,
        "alert": settings.SKEWWATCH_ALERT,
        "port": settings.SKEWWATCH_PORT,
        "connect_timeout": settings.SKEWWATCH_CONNECT_TIMEOUT,
        "host_key_policy": settings.SKEWWATCH_HOST_KEY_POLICY,
        "log_level": settings.SKEWWATCH_LOG_LEVEL,
        "log_format": settings.SKEWWATCH_LOG_FORMAT,
    }
    unknown = set(overrides) - set(values)
    if unknown:
        raise TypeError(f"Unknown config overrides: {sorted(unknown)}")
    values.update({k: v for k, v in overrides.items() if v is not None})

    hosts = parse_host_list(values["hosts"])

    user = (values["user"] or "").strip()
    if not user:
        raise ConfigError("Empty username")

    interval = parse_duration(values["sleep"])
    if interval < 0:
        raise ConfigError(f"Negative sleep duration {values['sleep']!r}")

    connect_timeout = parse_duration(values["connect_timeout"])
    if connect_timeout < 0:
        raise ConfigError(f"Negative connect timeout {values['connect_timeout']!r}")

    port = int(values["port"])
    if not 0 < port <= 65535:
        raise ConfigError(f"Invalid port {port}")

    policy = values["host_key_policy"].strip().lower()
    if policy not in HOST_KEY_POLICIES:
        raise ConfigError(f"Invalid host key policy {policy!r}, expected one of {HOST_KEY_POLICIES}")

    log_level = values["log_level"].strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Invalid log level {values['log_level']!r}")

    log_format = values["log_format"].strip().lower()
    if log_format not in LOG_FORMATS:
        raise ConfigError(f"Invalid log format {log_format!r}, expected one of {LOG_FORMATS}")

    alert = (values["alert"] or "").strip() or None

    return MonitorConfig(
        hosts=hosts,
        user=user,
        interval=interval,
        alert=alert,
        port=port,
        connect_timeout=connect_timeout,
        host_key_policy=policy,
        log_level=log_level,
        log_format=log_format,
    )
