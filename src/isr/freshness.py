"""Freshness classification for cached artifacts."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


class Action(str, Enum):
    SERVE = "serve"
    REVALIDATE = "revalidate"
    DISCARD = "discard"


_ACTIONS: Dict[Freshness, Action] = {
    Freshness.FRESH: Action.SERVE,
    Freshness.STALE: Action.REVALIDATE,
    Freshness.EXPIRED: Action.DISCARD,
}


@dataclass(frozen=True)
class StaleWindowPolicy:
    """
    How long an entry stays usable after its TTL.

    override=None mirrors the TTL, 0 disables the stale state,
    any other value is a fixed window in seconds.
    """

    override: Optional[int] = None

    def __post_init__(self) -> None:
        if self.override is not None and self.override < 0:
            raise ValueError(f"stale window must be >= 0, got {self.override}")

    @classmethod
    def mirror_ttl(cls) -> "StaleWindowPolicy":
        return cls(None)

    @classmethod
    def fixed(cls, seconds: int) -> "StaleWindowPolicy":
        return cls(int(seconds))

    @classmethod
    def disabled(cls) -> "StaleWindowPolicy":
        return cls(0)

    def window_for(self, ttl_seconds: int) -> int:
        if self.override is not None:
            return self.override
        return max(0, ttl_seconds)


@dataclass(frozen=True)
class ArtifactMetadata:
    created_at: int = 0
    ttl_seconds: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ArtifactMetadata":
        if not isinstance(data, Mapping):
            raise TypeError(f"artifact metadata must be a mapping, got {type(data).__name__}")
        ttl = data.get("ttl")
        if ttl is None:
            ttl = data.get("ttl_seconds")
        return cls(created_at=data.get("created_at") or 0, ttl_seconds=ttl or 0)


@dataclass(frozen=True)
class FreshnessVerdict:
    status: Freshness
    age_seconds: int
    expires_in_seconds: int

    @property
    def is_fresh(self) -> bool:
        return self.status is Freshness.FRESH

    @property
    def is_stale(self) -> bool:
        return self.status is Freshness.STALE

    @property
    def is_expired(self) -> bool:
        return self.status is Freshness.EXPIRED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "age_seconds": self.age_seconds,
            "expires_in_seconds": self.expires_in_seconds,
        }


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else now


class FreshnessEngine:
    """
    Classify cache entries as fresh, stale or expired.

    Status determination:
    - fresh: age < TTL (serve immediately)
    - stale: TTL <= age < TTL + stale_window (serve, regenerate in background)
    - expired: age >= TTL + stale_window (regenerate before serving)

    A negative TTL is always expired. A zero TTL is never fresh but still
    honors the stale window. A created_at in the future yields a negative
    age and counts as freshly created.
    """

    def __init__(self, policy: Optional[StaleWindowPolicy] = None):
        self.policy = policy or StaleWindowPolicy.mirror_ttl()

    @classmethod
    def from_config(cls, config) -> "FreshnessEngine":
        return cls(StaleWindowPolicy(config.freshness.stale_window_seconds))

    def classify(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> FreshnessVerdict:
        created_at = created_at or 0
        ttl_seconds = ttl_seconds or 0
        age = _now(now) - created_at

        return FreshnessVerdict(
            status=self._status(age, ttl_seconds, self.policy.window_for(ttl_seconds)),
            age_seconds=age,
            expires_in_seconds=ttl_seconds - age,
        )

    def classify_metadata(self, metadata: ArtifactMetadata, now: Optional[int] = None) -> FreshnessVerdict:
        return self.classify(metadata.created_at, metadata.ttl_seconds, now)

    def classify_batch(
        self,
        entries: Union[Sequence[Any], Mapping[Any, Any]],
        now: Optional[int] = None,
    ):
        """
        Classify many entries at once.

        Entries are ArtifactMetadata or mappings with created_at/ttl and an
        optional per-entry current_time. A mapping keeps its keys, a sequence
        its order.
        """
        if isinstance(entries, Mapping):
            return {index: self._classify_entry(entry, now) for index, entry in entries.items()}
        return [self._classify_entry(entry, now) for entry in entries]

    def _classify_entry(self, entry: Any, now: Optional[int]) -> FreshnessVerdict:
        if isinstance(entry, ArtifactMetadata):
            return self.classify_metadata(entry, now)
        metadata = ArtifactMetadata.from_dict(entry)
        entry_now = entry.get("current_time")
        return self.classify_metadata(metadata, now if entry_now is None else entry_now)

    def is_fresh(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> bool:
        return self.classify(created_at, ttl_seconds, now).is_fresh

    def is_stale(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> bool:
        return self.classify(created_at, ttl_seconds, now).is_stale

    def is_expired(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> bool:
        return self.classify(created_at, ttl_seconds, now).is_expired

    @staticmethod
    def recommended_action(verdict: Union[FreshnessVerdict, Freshness]) -> Action:
        status = verdict.status if isinstance(verdict, FreshnessVerdict) else Freshness(verdict)
        return _ACTIONS[status]

    def percent_remaining(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> float:
        """100 at creation, 0 at the TTL boundary, negative past it."""
        created_at = created_at or 0
        ttl_seconds = ttl_seconds or 0
        if ttl_seconds <= 0:
            return -100.0

        age = _now(now) - created_at
        return round((1 - age / ttl_seconds) * 100, 2)

    def seconds_until_full_expiry(self, created_at: int = 0, ttl_seconds: int = 0, now: Optional[int] = None) -> int:
        """Seconds until the stale window closes (negative once expired)."""
        created_at = created_at or 0
        ttl_seconds = ttl_seconds or 0
        age = _now(now) - created_at
        return ttl_seconds + self.policy.window_for(ttl_seconds) - age

    @staticmethod
    def _status(age: int, ttl: int, stale_window: int) -> Freshness:
        if ttl < 0:
            return Freshness.EXPIRED

        if ttl == 0:
            return Freshness.STALE if age < stale_window else Freshness.EXPIRED

        if age < ttl:
            return Freshness.FRESH
        if age < ttl + stale_window:
            return Freshness.STALE
        return Freshness.EXPIRED
