"""
Incremental Regeneration Cache Core
Canonical cache keys, freshness classification and event-driven invalidation
"""

from .freshness import Action, ArtifactMetadata, Freshness, FreshnessEngine, FreshnessVerdict, StaleWindowPolicy
from .invalidation import InvalidationEvent, InvalidationResolver, InvalidationResult
from .key_generator import CacheKeyGenerator, CanonicalKey, RequestContext

__all__ = [
    'Action',
    'ArtifactMetadata',
    'CacheKeyGenerator',
    'CanonicalKey',
    'Freshness',
    'FreshnessEngine',
    'FreshnessVerdict',
    'InvalidationEvent',
    'InvalidationResolver',
    'InvalidationResult',
    'RequestContext',
    'StaleWindowPolicy',
]
