"""Configuration management."""
import os
import yaml
from pathlib import Path

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

ENV_OVERRIDES = {
    "CF_ALERTS_DB_PATH": ("database", "path"),
    "CF_ALERTS_TICK_INTERVAL": ("monitor", "tick_interval"),
    "CF_ALERTS_LOG_LEVEL": ("logging", "level"),
    "CF_ALERTS_SOURCE_URL": ("source", "base_url"),
    "CF_ALERTS_API_TOKEN": ("source", "api_token"),
}


def load_config(path=None, env=None):
    """Load config from YAML, merging defaults with optional overrides.

    Precedence: environment > user YAML at `path` > default_config.yaml.
    """
    env = os.environ if env is None else env

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    for env_key, config_path in ENV_OVERRIDES.items():
        val = env.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    return config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["database", "monitor", "alerts", "history", "source", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    monitor = config["monitor"]
    if monitor["tick_interval"] < 1:
        raise ValueError("monitor.tick_interval must be >= 1 second")
    if not 0 < monitor["query_timeout"] < monitor["tick_interval"]:
        raise ValueError("monitor.query_timeout must be > 0 and below tick_interval")
    if monitor.get("max_workers", 1) < 1:
        raise ValueError("monitor.max_workers must be >= 1")

    alerts = config["alerts"]
    if alerts["cooldown_minutes"] < 0:
        raise ValueError("alerts.cooldown_minutes must be >= 0")
    severity = alerts.get("severity", {})
    if severity.get("medium_ratio", 1.5) > severity.get("high_ratio", 3.0):
        raise ValueError("alerts.severity.medium_ratio must not exceed high_ratio")

    if config["history"].get("max_alerts", 0) < 0:
        raise ValueError("history.max_alerts must be >= 0")
