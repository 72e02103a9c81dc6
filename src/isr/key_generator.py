#!/usr/bin/env python3
"""
Cache Key Generation — Canonical Request Keys

Implements:
- generate(context) → deterministic 32-char hex key
- generate_batch(contexts) → keys with input order/indices preserved
- verify_equivalence(a, b) → True when both contexts share a key
- Same path + same variants (after normalization) = identical key
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NewType, Sequence, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

logger = logging.getLogger(__name__)

CanonicalKey = NewType("CanonicalKey", str)

_REPEATED_SLASHES = re.compile(r"/+")


@dataclass(frozen=True)
class RequestContext:
    """One cacheable variant of a URL: the path plus its cache dimensions."""

    path: str = ""
    variants: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RequestContext":
        if not isinstance(data, Mapping):
            raise TypeError(f"request context must be a mapping, got {type(data).__name__}")
        # an empty "url" falls back to "path"
        path = data.get("url") or data.get("path") or ""
        variants = data.get("variants")
        return cls(path=path, variants=variants if variants is not None else {})


ContextLike = Union[RequestContext, Mapping[str, Any]]


def normalize_path(path: str) -> str:
    """Collapse repeated slashes, drop a trailing slash, force a leading one."""
    path = _REPEATED_SLASHES.sub("/", path)

    if path != "/" and path.endswith("/"):
        path = path[:-1]

    if not path.startswith("/"):
        path = "/" + path

    return path


def normalize_url(url: str) -> str:
    """
    Normalize a URL or path for key generation.

    Handles:
    - Trailing slashes (removed, except for root)
    - Query parameter ordering (sorted by key)
    - Case insensitivity (scheme and host)
    - Multiple slashes (collapsed to single)

    Anything urlsplit() rejects is treated as an opaque path. The output
    normalizes to itself, so normalize_url(normalize_url(x)) == normalize_url(x).
    """
    if not url:
        return "/"

    # Fast path: plain local paths skip urlsplit(). "//host/..." is a
    # scheme-relative URL, not a local path.
    if url.startswith("/") and not url.startswith("//") and not any(c in url for c in "?#") and "://" not in url:
        return normalize_path(url)

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        logger.debug(f"Unparseable URL {url!r}, falling back to path mode: {e}")
        return normalize_path(url)

    pieces: List[str] = []
    if parts.scheme:
        pieces.append(parts.scheme.lower() + "://")
    if parts.hostname:
        if not parts.scheme:
            pieces.append("//")
        host = parts.hostname.lower()
        pieces.append(f"[{host}]" if ":" in host else host)
        if port is not None:
            pieces.append(f":{port}")

    pieces.append(normalize_path(parts.path or "/"))

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    if pairs:
        pairs.sort(key=lambda pair: pair[0])
        pieces.append("?" + urlencode(pairs))

    return "".join(pieces)


def _normalize_value(value: Any) -> Any:
    # bool is checked with the other scalars and kept as-is, so True and 1
    # still serialize differently ("true" vs "1").
    if isinstance(value, str):
        return value.strip().casefold()
    if isinstance(value, Mapping):
        return {str(k): _normalize_value(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_normalize_value(item) for item in value]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    raise TypeError(f"unsupported variant value type: {type(value).__name__}")


def normalize_variants(variants: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a normalized copy of a variant mapping.

    Keys are sorted at every nesting level, strings are stripped and
    case-folded, other scalars are preserved. The input is not modified.
    """
    if not isinstance(variants, Mapping):
        raise TypeError(f"variants must be a mapping, got {type(variants).__name__}")
    return _normalize_value(variants)


class CacheKeyGenerator:
    """
    Generate deterministic cache keys for request contexts.

    Design:
    - Cache key = MD5(canonical JSON of normalized url + normalized variants)
    - Reordering variant keys never changes the key
    - Case/whitespace in string variant values never changes the key
    - A different value type (True vs 1) always changes the key
    """

    def _coerce(self, context: ContextLike) -> RequestContext:
        if isinstance(context, RequestContext):
            return context
        return RequestContext.from_dict(context)

    def normalize(self, context: ContextLike) -> Tuple[str, Dict[str, Any]]:
        """Return the (normalized url, normalized variants) pair for a context."""
        ctx = self._coerce(context)
        path = ctx.path if ctx.path is not None else ""
        if not isinstance(path, str):
            raise TypeError(f"path must be a string, got {type(path).__name__}")
        return normalize_url(path), normalize_variants(ctx.variants)

    def canonical_form(self, context: ContextLike) -> bytes:
        """Deterministic byte serialization that gets digested into the key."""
        url, variants = self.normalize(context)
        return encode_canonical(url, variants)

    def generate(self, context: ContextLike) -> CanonicalKey:
        """
        Generate the cache key for a request context.

        Args:
            context: RequestContext, or a mapping with "url" and "variants"

        Returns:
            32-char lowercase hex string
        """
        payload = self.canonical_form(context)
        key = CanonicalKey(hashlib.md5(payload, usedforsecurity=False).hexdigest())
        logger.debug(f"Generated key: {key} ({payload.decode('utf-8')})")
        return key

    def generate_batch(self, contexts: Union[Sequence[ContextLike], Mapping[Any, ContextLike]]):
        """Generate keys for many contexts; a mapping keeps its keys, a sequence its order."""
        if isinstance(contexts, Mapping):
            return {index: self.generate(context) for index, context in contexts.items()}
        return [self.generate(context) for context in contexts]

    def verify_equivalence(self, first: ContextLike, second: ContextLike) -> bool:
        """True if both contexts canonicalize to the same key."""
        return self.generate(first) == self.generate(second)


def encode_canonical(url: str, variants: Mapping[str, Any]) -> bytes:
    return json.dumps(
        {"url": url, "variants": variants},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
