#!/usr/bin/env python3
"""
Invalidation Resolver

Maps content mutation events (post updated, comment added, ...) to the
cache keys that must be purged.

Flow:
    event type → rule table → surface kinds → concrete paths
    paths × variant sets → CacheKeyGenerator → purge set
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from jsonschema import Draft7Validator

from .key_generator import CacheKeyGenerator, CanonicalKey, encode_canonical, normalize_url, normalize_variants

logger = logging.getLogger(__name__)

EVENT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "event": {"type": ["string", "null"]},
        "event_type": {"type": ["string", "null"]},
        "entity_type": {"type": ["string", "null"]},
        "entity_id": {"type": ["string", "integer", "null"]},
        "dependencies": {
            "type": ["object", "null"],
            "additionalProperties": {
                "anyOf": [
                    {"type": ["string", "integer"]},
                    {"type": "array", "items": {"type": ["string", "integer"]}},
                ],
            },
        },
        "variants": {"type": ["array", "null"], "items": {"type": "object"}},
        "variant_sets": {"type": ["array", "null"], "items": {"type": "object"}},
    },
}

_event_validator = Draft7Validator(EVENT_SCHEMA)


def validate_event(payload: Any) -> None:
    errors = sorted(_event_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"invalidation event validation failed: {messages}")


@dataclass(frozen=True)
class InvalidationEvent:
    event_type: str = ""
    entity_type: str = ""
    entity_id: Optional[Union[int, str]] = None
    dependencies: Mapping[str, Any] = field(default_factory=dict)
    variant_sets: Sequence[Mapping[str, Any]] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.dependencies, Mapping):
            raise TypeError(f"dependencies must be a mapping, got {type(self.dependencies).__name__}")
        if isinstance(self.variant_sets, (str, bytes, Mapping)):
            raise TypeError("variant_sets must be a list of mappings")
        for variants in self.variant_sets:
            if not isinstance(variants, Mapping):
                raise TypeError(f"each variant set must be a mapping, got {type(variants).__name__}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InvalidationEvent":
        """Build an event from a payload shaped like {"event", "entity_type", "entity_id", ...}."""
        validate_event(data)
        event_type = data.get("event_type")
        if event_type is None:
            event_type = data.get("event")
        variant_sets = data.get("variant_sets")
        if variant_sets is None:
            variant_sets = data.get("variants")
        return cls(
            event_type=event_type or "",
            entity_type=data.get("entity_type") or "",
            entity_id=data.get("entity_id"),
            dependencies=data.get("dependencies") or {},
            variant_sets=tuple(variant_sets or ()),
        )

    def discriminators(self, kind: str) -> List[Any]:
        """Concrete discriminators listed under dependencies[kind]; a scalar counts as one."""
        value = self.dependencies.get(kind)
        if value is None:
            return []
        if isinstance(value, (str, bytes, int)):
            return [value]
        return list(value)


class Surface(ABC):
    """A kind of cached page that an event can affect."""

    name: str

    @abstractmethod
    def expand(self, event: InvalidationEvent) -> List[str]:
        """Concrete paths this surface contributes for an event."""


@dataclass(frozen=True)
class EntitySurface(Surface):
    """The page of a single entity, e.g. /blog/post-42."""

    name: str
    entity_type: str
    template: str

    def expand(self, event: InvalidationEvent) -> List[str]:
        paths = []
        if event.entity_type == self.entity_type and event.entity_id is not None:
            paths.append(self.template.format(event.entity_id))
        paths.extend(self.template.format(item) for item in event.discriminators(self.name))
        return paths


@dataclass(frozen=True)
class SingletonSurface(Surface):
    """A page that always exists once, optionally split into sections."""

    name: str
    path: str
    section_template: Optional[str] = None

    def expand(self, event: InvalidationEvent) -> List[str]:
        paths = [self.path]
        if self.section_template:
            paths.extend(self.section_template.format(item) for item in event.discriminators(self.name))
        return paths


@dataclass(frozen=True)
class ListSurface(Surface):
    """Listing pages, one per discriminator (category, author, tag, archive)."""

    name: str
    template: str

    def expand(self, event: InvalidationEvent) -> List[str]:
        return [self.template.format(item) for item in event.discriminators(self.name)]


DEFAULT_SURFACES: Tuple[Surface, ...] = (
    EntitySurface("post_page", entity_type="post", template="/blog/post-{}"),
    SingletonSurface("homepage", path="/", section_template="/?section={}"),
    SingletonSurface("recent_comments", path="/comments/recent"),
    SingletonSurface("rss_feed", path="/feed.xml"),
    ListSurface("category_page", template="/category/{}"),
    ListSurface("author_page", template="/author/{}"),
    ListSurface("tag_pages", template="/tag/{}"),
    ListSurface("archive_page", template="/archive/{}"),
)

# Comment events need dependencies["post_page"] to reach the post itself.
DEFAULT_RULES: Dict[str, Tuple[str, ...]] = {
    "post_created": ("homepage", "category_page", "author_page", "tag_pages", "archive_page", "rss_feed"),
    "post_updated": ("post_page", "homepage", "category_page", "author_page", "tag_pages"),
    "post_deleted": ("post_page", "homepage", "category_page", "author_page", "tag_pages", "archive_page"),
    "comment_added": ("post_page", "recent_comments"),
    "comment_updated": ("post_page",),
    "comment_deleted": ("post_page", "recent_comments"),
    "user_updated": ("author_page",),
    "category_updated": ("category_page", "homepage"),
}


@dataclass(frozen=True)
class InvalidationResult:
    purge_keys: List[CanonicalKey]
    reason: str
    event_type: str = ""
    paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "purge_keys": list(self.purge_keys),
            "paths": list(self.paths),
            "reason": self.reason,
        }


EventLike = Union[InvalidationEvent, Mapping[str, Any]]


def _unique(items: Iterable[Any]) -> List[Any]:
    return list(dict.fromkeys(items))


class InvalidationResolver:
    """
    Resolve mutation events into purge sets.

    Design:
    - Rule table: event type → ordered surface kinds
    - Surface registry: surface kind → expansion into concrete paths
    - Unknown events and unknown surface kinds resolve to nothing
    - Rules are configured before the resolver is shared between threads;
      resolve() itself never mutates state
    """

    def __init__(
        self,
        key_generator: Optional[CacheKeyGenerator] = None,
        rules: Optional[Mapping[str, Sequence[str]]] = None,
        surfaces: Optional[Iterable[Surface]] = None,
    ):
        self.key_generator = key_generator or CacheKeyGenerator()
        source = DEFAULT_RULES if rules is None else rules
        self._rules: Dict[str, Tuple[str, ...]] = {event: tuple(kinds) for event, kinds in source.items()}
        self._surfaces: Dict[str, Surface] = {
            surface.name: surface for surface in (DEFAULT_SURFACES if surfaces is None else surfaces)
        }

    @classmethod
    def from_config(cls, config, key_generator: Optional[CacheKeyGenerator] = None) -> "InvalidationResolver":
        """Default rules with the configured rules layered on top."""
        resolver = cls(key_generator)
        for event_type, kinds in config.rules.items():
            resolver.add_rule(event_type, kinds)
        return resolver

    # -- configuration --------------------------------------------------

    @property
    def rules(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._rules)

    @property
    def surfaces(self) -> Dict[str, Surface]:
        return dict(self._surfaces)

    def get_rule(self, event_type: str) -> List[str]:
        return list(self._rules.get(event_type, ()))

    def add_rule(self, event_type: str, surface_kinds: Sequence[str]) -> None:
        """Add or overwrite the rule for an event type. Configuration time only."""
        if isinstance(surface_kinds, str):
            raise TypeError("surface_kinds must be a list of surface kind names")
        kinds = tuple(surface_kinds)
        unknown = [kind for kind in kinds if kind not in self._surfaces]
        if unknown:
            logger.warning(f"Rule {event_type} references unregistered surface kinds: {unknown}")
        self._rules[event_type] = kinds
        logger.info(f"Invalidation rule set: {event_type} → {list(kinds)}")

    def with_rule(self, event_type: str, surface_kinds: Sequence[str]) -> "InvalidationResolver":
        """Builder step: a copy of this resolver with one rule added or replaced."""
        resolver = InvalidationResolver(self.key_generator, self._rules, self._surfaces.values())
        resolver.add_rule(event_type, surface_kinds)
        return resolver

    def with_surface(self, surface: Surface) -> "InvalidationResolver":
        """Builder step: a copy of this resolver with one more surface kind registered."""
        surfaces = dict(self._surfaces)
        surfaces[surface.name] = surface
        return InvalidationResolver(self.key_generator, self._rules, surfaces.values())

    # -- resolution -----------------------------------------------------

    def resolve(self, event: EventLike) -> InvalidationResult:
        """
        Resolve which cache keys to purge for an event.

        Args:
            event: InvalidationEvent, or a mapping with event/entity_type/
                   entity_id/dependencies/variants

        Returns:
            InvalidationResult with purge_keys, reason and affected paths
        """
        event = self._coerce(event)
        kinds = self._rules.get(event.event_type, ())

        if not kinds:
            logger.debug(f"No invalidation rules for event {event.event_type!r}")
            return InvalidationResult(
                purge_keys=[],
                reason=f"No invalidation rules defined for event: {event.event_type}",
                event_type=event.event_type,
            )

        paths = self._affected_paths(kinds, event)
        keys = _unique(
            self.key_generator.generate({"url": path, "variants": variants})
            for path in paths
            for variants in (event.variant_sets or ({},))
        )

        reason = self._build_reason(event, len(keys))
        logger.debug(f"{reason}: {len(paths)} path(s), {len(keys)} key(s)")
        return InvalidationResult(purge_keys=keys, reason=reason, event_type=event.event_type, paths=paths)

    def resolve_batch(self, events: Union[Sequence[EventLike], Mapping[Any, EventLike]]):
        """Resolve many events; a mapping keeps its keys, a sequence its order."""
        if isinstance(events, Mapping):
            return {index: self.resolve(event) for index, event in events.items()}
        return [self.resolve(event) for event in events]

    def estimate_count(self, event: EventLike) -> int:
        """
        Number of keys resolve() would return, without digesting anything.

        Paths and variant sets are deduplicated after normalization, so the
        estimate matches resolve() exactly.
        """
        event = self._coerce(event)
        kinds = self._rules.get(event.event_type, ())
        if not kinds:
            return 0

        paths = self._affected_paths(kinds, event)
        variant_forms = {
            encode_canonical("", normalize_variants(variants)) for variants in event.variant_sets
        }
        return len(paths) * max(1, len(variant_forms))

    def _affected_paths(self, kinds: Sequence[str], event: InvalidationEvent) -> List[str]:
        raw: List[str] = []
        for kind in kinds:
            surface = self._surfaces.get(kind)
            if surface is None:
                continue
            raw.extend(surface.expand(event))
        return _unique(normalize_url(path) for path in raw)

    @staticmethod
    def _coerce(event: EventLike) -> InvalidationEvent:
        if isinstance(event, InvalidationEvent):
            return event
        if not isinstance(event, Mapping):
            raise TypeError(f"event must be a mapping or InvalidationEvent, got {type(event).__name__}")
        return InvalidationEvent.from_dict(event)

    @staticmethod
    def _build_reason(event: InvalidationEvent, key_count: int) -> str:
        action = event.event_type.replace("_", " ").capitalize()
        subject = " ".join(str(part) for part in (event.entity_type, event.entity_id) if part not in (None, ""))
        if subject:
            return f"{action} ({subject}) affects {key_count} key(s)"
        return f"{action} affects {key_count} key(s)"
