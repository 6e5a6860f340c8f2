"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_INTERVAL = 60
DEFAULT_TIMEOUT = 10
DEFAULT_USER_AGENT = "uptimewatch/0.1"
DEFAULT_METRICS_PATH = "metrics/uptime_metrics.json"

PROBE_METHODS = ("GET", "HEAD")


def _validate_https_url(url: str, what: str) -> None:
    """Raise ConfigError unless ``url`` is an absolute https:// URL with a host."""
    if not url:
        raise ConfigError(f"{what} cannot be empty")
    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise ConfigError(f"{what} must use https://, got '{url}'")
    if not parsed.netloc:
        raise ConfigError(f"{what} has no host: '{url}'")


@dataclass(frozen=True)
class MonitorConfig:
    """Configuration for the probe scheduler."""

    interval: int = DEFAULT_INTERVAL  # seconds between ticks
    timeout: int = DEFAULT_TIMEOUT  # per-probe timeout in seconds
    method: str = "GET"
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.interval < 1:
            raise ConfigError(f"Monitor interval must be at least 1 second (got {self.interval})")
        if self.timeout < 1:
            raise ConfigError(f"Probe timeout must be at least 1 second (got {self.timeout})")
        if self.method not in PROBE_METHODS:
            raise ConfigError(f"Probe method must be one of {PROBE_METHODS} (got '{self.method}')")
        if not self.user_agent:
            raise ConfigError("User-Agent cannot be empty")


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for the durable metrics file."""

    path: str = DEFAULT_METRICS_PATH

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigError("Metrics path cannot be empty")


@dataclass(frozen=True)
class NotifierConfig:
    """Configuration for the notification webhook (Slack incoming webhook style)."""

    webhook_url: str | None = None
    timeout: int = 10

    def __post_init__(self) -> None:
        if self.webhook_url is not None:
            _validate_https_url(self.webhook_url, "Webhook URL")
        if self.timeout < 1:
            raise ConfigError(f"Webhook timeout must be at least 1 second (got {self.timeout})")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    endpoints: list[str]
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)

    def __post_init__(self) -> None:
        if not self.endpoints:
            raise ConfigError("At least one endpoint must be configured")
        for endpoint in self.endpoints:
            _validate_https_url(endpoint, "Endpoint URL")
        duplicates = {url for url in self.endpoints if self.endpoints.count(url) > 1}
        if duplicates:
            raise ConfigError(f"Duplicate endpoints found: {sorted(duplicates)}")


def _as_int(value: object, name: str) -> int:
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' must be an integer, got {value!r}")


def _parse_endpoints(data: object) -> list[str]:
    """Parse the endpoints list. Entries are URL strings or ``{url: ...}`` mappings."""
    if data is None:
        raise ConfigError("Configuration must contain an 'endpoints' list")
    if not isinstance(data, list):
        raise ConfigError("'endpoints' must be a list")

    endpoints: list[str] = []
    for index, entry in enumerate(data):
        if isinstance(entry, str):
            endpoints.append(entry.strip())
        elif isinstance(entry, dict) and entry.get("url") is not None:
            endpoints.append(str(entry["url"]).strip())
        else:
            raise ConfigError(f"Endpoint entry {index} must be a URL string or a mapping with 'url'")
    return endpoints


def _parse_monitor_config(data: dict | None) -> MonitorConfig:
    """Parse monitor configuration section."""
    if data is None:
        return MonitorConfig()
    if not isinstance(data, dict):
        raise ConfigError("'monitor' section must be a dictionary")

    return MonitorConfig(
        interval=_as_int(data.get("interval", DEFAULT_INTERVAL), "monitor.interval"),
        timeout=_as_int(data.get("timeout", DEFAULT_TIMEOUT), "monitor.timeout"),
        method=str(data.get("method", "GET")).upper(),
        user_agent=str(data.get("user_agent", DEFAULT_USER_AGENT)),
    )


def _parse_metrics_config(data: dict | None) -> MetricsConfig:
    """Parse metrics configuration section."""
    if data is None:
        return MetricsConfig()
    if not isinstance(data, dict):
        raise ConfigError("'metrics' section must be a dictionary")

    return MetricsConfig(path=str(data.get("path", DEFAULT_METRICS_PATH)))


def _parse_notifier_config(data: dict | None) -> NotifierConfig:
    """Parse notifier configuration section."""
    if data is None:
        return NotifierConfig()
    if not isinstance(data, dict):
        raise ConfigError("'notifier' section must be a dictionary")

    webhook_url = data.get("webhook_url")
    return NotifierConfig(
        webhook_url=str(webhook_url) if webhook_url else None,
        timeout=_as_int(data.get("timeout", 10), "notifier.timeout"),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - UPTIMEWATCH_INTERVAL: Override monitor.interval
    - UPTIMEWATCH_TIMEOUT: Override monitor.timeout
    - UPTIMEWATCH_METRICS_PATH: Override metrics.path
    - UPTIMEWATCH_WEBHOOK_URL: Override notifier.webhook_url
    - SLACK_WEBHOOK_URL: Used for notifier.webhook_url when nothing else sets it
    """
    for section in ("monitor", "metrics", "notifier"):
        if not isinstance(config_data.get(section), dict):
            if config_data.get(section) is not None:
                raise ConfigError(f"'{section}' section must be a dictionary")
            config_data[section] = {}

    interval = os.environ.get("UPTIMEWATCH_INTERVAL")
    if interval is not None:
        config_data["monitor"]["interval"] = _as_int(interval, "UPTIMEWATCH_INTERVAL")

    timeout = os.environ.get("UPTIMEWATCH_TIMEOUT")
    if timeout is not None:
        config_data["monitor"]["timeout"] = _as_int(timeout, "UPTIMEWATCH_TIMEOUT")

    metrics_path = os.environ.get("UPTIMEWATCH_METRICS_PATH")
    if metrics_path is not None:
        config_data["metrics"]["path"] = metrics_path

    webhook_url = os.environ.get("UPTIMEWATCH_WEBHOOK_URL")
    if webhook_url is not None:
        config_data["notifier"]["webhook_url"] = webhook_url
    elif not config_data["notifier"].get("webhook_url"):
        slack_url = os.environ.get("SLACK_WEBHOOK_URL")
        if slack_url:
            config_data["notifier"]["webhook_url"] = slack_url

    return config_data


def _apply_overrides(config_data: dict, overrides: dict) -> dict:
    """Merge explicit overrides (e.g. from the command line) section by section."""
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            section = config_data.setdefault(key, {})
            section.update({k: v for k, v in value.items() if v is not None})
        else:
            config_data[key] = value
    return config_data


def _read_config_file(config_path: str) -> dict:
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    return data


def load_config(config_path: str | None = None, overrides: dict | None = None) -> Config:
    """Load and validate configuration.

    Sources are applied in increasing precedence: YAML file, environment
    variables, explicit ``overrides``.

    Args:
        config_path: Optional path to a YAML configuration file.
        overrides: Values shaped like the YAML document, e.g.
            ``{"endpoints": [...], "monitor": {"interval": 30}}``. None values are ignored.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    data = _read_config_file(config_path) if config_path else {}
    data = _apply_env_overrides(data)
    if overrides:
        data = _apply_overrides(data, overrides)

    return Config(
        endpoints=_parse_endpoints(data.get("endpoints")),
        monitor=_parse_monitor_config(data.get("monitor")),
        metrics=_parse_metrics_config(data.get("metrics")),
        notifier=_parse_notifier_config(data.get("notifier")),
    )
