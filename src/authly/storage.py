"""Storage backends for flow state and the cached access token.

The session engine only needs ``get_item``/``set_item``/``remove_item``. A
backend may implement them synchronously or as coroutines; ``StorageAdapter``
hides the difference so the engine always awaits.

None of the backends lock anything. Two browser tabs or two workers sharing
one backend can race each other; last write wins.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, cast

import redis
import redis.asyncio

if TYPE_CHECKING:
    from .protocols import Storage


class StorageAdapter:
    """Async facade over a sync or async ``Storage``.

    Every call is awaited when the backend returns an awaitable and passed
    through otherwise. Backend exceptions propagate unchanged.
    """

    def __init__(self, backend: Storage) -> None:
        self._backend = backend

    @property
    def backend(self) -> Storage:
        """The wrapped backend."""
        return self._backend

    @staticmethod
    async def _resolve(result: Any) -> Any:
        if inspect.isawaitable(result):
            return await result
        return result

    async def get_item(self, key: str) -> str | None:
        """Return the stored value for ``key``, or None if absent."""
        return cast("str | None", await self._resolve(self._backend.get_item(key)))

    async def set_item(self, key: str, value: str) -> None:
        await self._resolve(self._backend.set_item(key, value))

    async def remove_item(self, key: str) -> None:
        """Delete ``key``; removing an absent key is not an error."""
        await self._resolve(self._backend.remove_item(key))


class InMemoryStorage:
    """Plain dict storage, scoped to one process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items


def _decode(value: bytes | str | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisStorage:
    """Synchronous Redis storage.

    Args:
        client: A ``redis.Redis`` (or compatible) client.
        prefix: Prepended to every key, e.g. a per-user namespace.
        ttl_seconds: Optional expiry applied on every write.
    """

    def __init__(
        self,
        client: redis.Redis | Any,
        prefix: str = "",
        ttl_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisStorage:
        """Build a storage from a ``redis://`` URL.

        Args:
            url: Connection URL understood by ``redis.Redis.from_url``.
            **kwargs: Forwarded to the constructor (``prefix``, ``ttl_seconds``).

        Returns:
            A storage bound to a fresh client.
        """
        return cls(redis.Redis.from_url(url), **kwargs)

    def get_item(self, key: str) -> str | None:
        return _decode(self._client.get(f"{self._prefix}{key}"))

    def set_item(self, key: str, value: str) -> None:
        """Write ``value``, with ``SETEX`` when a TTL is configured.

        Raises:
            redis.RedisError: If the server is unreachable or rejects the write.
        """
        if self._ttl is None:
            self._client.set(f"{self._prefix}{key}", value)
        else:
            self._client.setex(f"{self._prefix}{key}", self._ttl, value)

    def remove_item(self, key: str) -> None:
        self._client.delete(f"{self._prefix}{key}")


class AsyncRedisStorage:
    """``redis.asyncio`` storage; same options as ``RedisStorage``."""

    def __init__(
        self,
        client: redis.asyncio.Redis | Any,
        prefix: str = "",
        ttl_seconds: int | None = None,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> AsyncRedisStorage:
        """Build a storage from a URL via ``redis.asyncio.Redis.from_url``."""
        return cls(redis.asyncio.Redis.from_url(url), **kwargs)

    async def get_item(self, key: str) -> str | None:
        return _decode(await self._client.get(f"{self._prefix}{key}"))

    async def set_item(self, key: str, value: str) -> None:
        if self._ttl is None:
            await self._client.set(f"{self._prefix}{key}", value)
        else:
            await self._client.setex(f"{self._prefix}{key}", self._ttl, value)

    async def remove_item(self, key: str) -> None:
        await self._client.delete(f"{self._prefix}{key}")
