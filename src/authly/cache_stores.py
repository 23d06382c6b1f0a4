"""Per-kid caches for signing keys resolved from a JWKS endpoint.

Both stores implement ``CacheStore`` and support negative caching: a kid that
the key set does not contain is remembered as missing for a short TTL so that
repeated tokens carrying it fail without another lookup.

- ``InMemoryCache``: process-local, lazily expired dict.
- ``RedisCache``: shared between workers; expiry is left to Redis ``SETEX``.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from jwt import PyJWK

if TYPE_CHECKING:
    import redis

_MISSING_MARKER: Final[str] = "__missing__"


@dataclass(slots=True)
class _Entry:
    key: PyJWK | None  # None: known missing
    expires_at: float


def _require_kid(key: PyJWK) -> str:
    if not key.key_id:
        raise ValueError("Only keys with a key_id can be cached")
    return key.key_id


class InMemoryCache:
    """Dict-backed key cache; suitable for a single process."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def _live(self, kid: str) -> _Entry | None:
        entry = self._entries.get(kid)
        if entry is None:
            return None
        if time.time() >= entry.expires_at:
            self._entries.pop(kid, None)
            return None
        return entry

    def get(self, kid: str) -> PyJWK | None:
        """Return the cached key for ``kid``, or None if absent, expired or missing.

        Use ``is_missing`` to tell a negative entry from no entry.
        """
        entry = self._live(kid)
        return entry.key if entry else None

    def set(self, key: PyJWK, ttl_seconds: int) -> None:
        """Cache ``key`` under its key_id for ``ttl_seconds``.

        Raises:
            ValueError: If the key has no key_id.
        """
        self._entries[_require_kid(key)] = _Entry(key, time.time() + ttl_seconds)

    def set_missing(self, kid: str, ttl_seconds: int) -> None:
        """Remember ``kid`` as absent from the key set.

        Security Note:
            Keep this TTL short so a newly rotated key is picked up quickly.
        """
        self._entries[kid] = _Entry(None, time.time() + ttl_seconds)

    def is_missing(self, kid: str) -> bool:
        """True if ``kid`` holds a live negative entry."""
        entry = self._live(kid)
        return entry is not None and entry.key is None


class RedisCache:
    """Redis-backed key cache shared across processes.

    Keys are stored as their JWK JSON under ``{prefix}{kid}``; a missing kid
    is stored as ``{"__missing__": true}``.

    Example:
        ```python
        cache = RedisCache(redis.Redis.from_url("redis://localhost:6379/0"))
        provider = RemoteJWKSProvider(jwks_url, cache=cache)
        ```
    """

    def __init__(self, redis_client: redis.Redis | Any, prefix: str = "authly:jwk:") -> None:
        """Initialize the cache.

        Args:
            redis_client: A sync ``redis.Redis`` client (or compatible).
            prefix: Namespace prepended to every kid.
        """
        self._client = redis_client
        self._prefix = prefix

    def _load(self, kid: str) -> dict[str, Any] | None:
        raw = self._client.get(f"{self._prefix}{kid}")
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RuntimeError(f"Corrupted cache entry for kid {kid!r}") from e
        if not isinstance(data, dict):
            raise RuntimeError(f"Corrupted cache entry for kid {kid!r}")
        return data

    def get(self, kid: str) -> PyJWK | None:
        """Retrieve a cached key by ID.

        Args:
            kid: Key ID to look up.

        Returns:
            The key, or None if nothing is cached or the kid is marked missing.

        Raises:
            RuntimeError: If the stored entry cannot be parsed as a JWK.
        """
        data = self._load(kid)
        if data is None or data.get(_MISSING_MARKER) is True:
            return None
        try:
            return PyJWK.from_dict(data)
        except Exception as e:
            raise RuntimeError(f"Corrupted cache entry for kid {kid!r}") from e

    def set(self, key: PyJWK, ttl_seconds: int) -> None:
        """Store the key as JWK JSON with a Redis-side expiry.

        Raises:
            ValueError: If the key has no key_id.
        """
        kid = _require_kid(key)
        self._client.setex(
            f"{self._prefix}{kid}",
            ttl_seconds,
            json.dumps(key._jwk_data),  # pyright: ignore[reportPrivateUsage]
        )

    def set_missing(self, kid: str, ttl_seconds: int) -> None:
        self._client.setex(
            f"{self._prefix}{kid}", ttl_seconds, json.dumps({_MISSING_MARKER: True})
        )

    def is_missing(self, kid: str) -> bool:
        """Check for a negative entry; a corrupted entry counts as not missing."""
        try:
            data = self._load(kid)
        except RuntimeError:
            return False
        return data is not None and data.get(_MISSING_MARKER) is True
