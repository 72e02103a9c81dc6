"""Purge log schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from .invalidation import InvalidationResult

PURGE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "resolved_at",
        "event_type",
        "reason",
        "keys_cleared",
        "purge_keys",
    ],
    "properties": {
        "resolved_at": {"type": "string", "format": "date-time"},
        "event_type": {"type": "string"},
        "reason": {"type": "string", "minLength": 1},
        "keys_cleared": {"type": "integer", "minimum": 0},
        "purge_keys": {
            "type": "array",
            "items": {"type": "string", "pattern": "^[0-9a-f]{32}$"},
            "uniqueItems": True,
        },
        "paths": {"type": "array", "items": {"type": "string"}},
        "estimated_keys": {"type": ["integer", "null"], "minimum": 0},
    },
}

_validator = Draft7Validator(PURGE_SCHEMA)


def validate_purge(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"purge log validation failed: {messages}")


@dataclass
class PurgeLogRecord:
    event_type: str
    reason: str
    purge_keys: List[str]
    paths: List[str] = field(default_factory=list)
    estimated_keys: Optional[int] = None
    resolved_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_result(cls, result: InvalidationResult, estimated_keys: Optional[int] = None) -> "PurgeLogRecord":
        return cls(
            event_type=result.event_type,
            reason=result.reason,
            purge_keys=list(result.purge_keys),
            paths=list(result.paths),
            estimated_keys=estimated_keys,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "resolved_at": self.resolved_at,
            "event_type": self.event_type,
            "reason": self.reason,
            "keys_cleared": len(self.purge_keys),
            "purge_keys": list(self.purge_keys),
            "paths": list(self.paths),
            "estimated_keys": self.estimated_keys,
        }
        validate_purge(payload)
        return payload
