"""Configuration loader for the regeneration cache core."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from jsonschema import Draft7Validator

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "freshness": {
            "type": ["object", "null"],
            "properties": {
                "stale_window_seconds": {"type": ["integer", "null"], "minimum": 0},
            },
        },
        "invalidation": {
            "type": ["object", "null"],
            "properties": {
                "rules": {
                    "type": ["object", "null"],
                    "additionalProperties": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
        "logging": {
            "type": ["object", "null"],
            "properties": {
                "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
            },
        },
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)


@dataclass(frozen=True)
class FreshnessConfig:
    stale_window_seconds: Optional[int] = None


@dataclass(frozen=True)
class IsrConfig:
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)
    rules: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IsrConfig":
        validate_config(data)
        freshness = data.get("freshness") or {}
        rules = (data.get("invalidation") or {}).get("rules") or {}
        return cls(
            freshness=FreshnessConfig(stale_window_seconds=freshness.get("stale_window_seconds")),
            rules={event: tuple(kinds) for event, kinds in rules.items()},
            log_level=(data.get("logging") or {}).get("level", "INFO"),
        )


ENV_MAP = {
    "freshness.stale_window_seconds": "ISR_STALE_WINDOW_SECONDS",
    "logging.level": "ISR_LOG_LEVEL",
}


def validate_config(data: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"config validation failed: {messages}")


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping: {path}")
    return data


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        last = parts[-1]
        if last == "stale_window_seconds":
            value = None if value.strip().lower() in {"", "none", "null"} else int(value)
        elif last == "level":
            value = value.upper()
        target[last] = value

    return merged


def load_config(config_path: str | Path = "config/isr.defaults.yml") -> IsrConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return IsrConfig.from_dict(data)
