"""Configuration loading utilities for the license switch toolkit."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = Path("config/settings.yaml")
ENV_CONFIG_PATH = "LICENSE_SWITCH_CONFIG"
ENV_PREFIX = "LICENSE_SWITCH_"


@dataclass
class GraphConfig:
    """Settings for the Microsoft Graph app registration."""

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    default_usage_location: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


@dataclass
class SwitchConfig:
    """Tunables for the switch loop and the audit export."""

    delay_seconds: float = 0.5
    max_test_users: int = 5
    export_dir: Path = field(default_factory=lambda: Path("."))


@dataclass
class AppConfig:
    """Aggregate configuration for the application."""

    graph: GraphConfig = field(default_factory=GraphConfig)
    switch: SwitchConfig = field(default_factory=SwitchConfig)


class ConfigurationError(RuntimeError):
    """Raised when the configuration file or environment variables are invalid."""


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file '{path}' does not exist. "
            "Create it from 'config/settings.example.yaml' or set environment variables."
        )
    with path.open("r", encoding="utf-8") as file:
        try:
            payload = yaml.safe_load(file) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping.")
    return payload


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Override configuration values with environment variables."""

    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == ENV_CONFIG_PATH:
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)
    return config_dict


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            result[key] = _deep_merge(base[key], value)
        else:
            result[key] = value
    return result


def _resolve_config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _load_config_dict(path: Optional[Path] = None) -> Dict[str, Any]:
    resolved_path = _resolve_config_path(path)
    if resolved_path == DEFAULT_CONFIG_PATH and not resolved_path.exists():
        # The default file is optional; environment variables may carry everything.
        config_dict: Dict[str, Any] = {}
    else:
        config_dict = _load_from_file(resolved_path)
    return _apply_environment_overrides(config_dict)


def _section(config_dict: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = config_dict.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Configuration section '{key}' must be a mapping.")
    return section


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    return int(value)


def _to_float(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


def _optional_path(raw: Any) -> Optional[Path]:
    """Convert a raw config value to ``Path`` if set, otherwise ``None``."""

    if raw is None:
        return None
    if isinstance(raw, Path):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return None
        return Path(stripped)
    return Path(raw)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from disk and environment variables."""

    config_dict = _load_config_dict(path)
    graph_section = _section(config_dict, "graph")
    switch_section = _section(config_dict, "switch")

    graph_config = GraphConfig(
        tenant_id=_optional_str(graph_section.get("tenant_id")),
        client_id=_optional_str(graph_section.get("client_id")),
        client_secret=_optional_str(graph_section.get("client_secret")),
        default_usage_location=_optional_str(graph_section.get("default_usage_location")),
    )

    defaults = SwitchConfig()
    try:
        delay_seconds = _to_float(switch_section.get("delay_seconds", defaults.delay_seconds))
        max_test_users = _to_int(switch_section.get("max_test_users", defaults.max_test_users))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid switch configuration value: {exc}.") from exc

    if delay_seconds < 0:
        raise ConfigurationError("switch.delay_seconds must not be negative.")
    if max_test_users < 1:
        raise ConfigurationError("switch.max_test_users must be a positive integer.")

    switch_config = SwitchConfig(
        delay_seconds=delay_seconds,
        max_test_users=max_test_users,
        export_dir=_optional_path(switch_section.get("export_dir")) or defaults.export_dir,
    )

    return AppConfig(graph=graph_config, switch=switch_config)


__all__ = [
    "AppConfig",
    "ConfigurationError",
    "GraphConfig",
    "SwitchConfig",
    "load_config",
]
