"""Structural interfaces used across the library.

Protocols (PEP 544): anything with the right methods can stand in for a key
provider, key cache, storage backend, authorizer or extractor.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from jwt import PyJWK

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Decoded, verified token payload."""

type ViewFunc = Callable[..., Any]
"""Flask view function."""

type PermissionLevels = Mapping[str, int]
"""Resource name -> permission bitmask, as carried by the ``permissions`` claim."""

type MaybeAwaitable[T] = T | Awaitable[T]
"""Return type of storage methods that may be synchronous or asynchronous."""


# ============================================================================
# Verification
# ============================================================================


class TokenVerifier(Protocol):
    """Verifies a compact JWS token and returns its claims."""

    def verify(self, token: str) -> Claims:
        """Verify ``token``.

        Raises:
            TokenExpired: The ``exp`` claim has passed.
            TokenInvalid: Any other verification failure.
        """
        ...


class KeyProvider(Protocol):
    """Resolves the verification key for a token header.

    Implementations receive the (unverified) ``kid`` and ``alg`` from the
    token header and return something ``jwt.decode`` accepts as a key: a
    ``PyJWK``, a ``cryptography`` public key, or PEM bytes.
    """

    def get_key_for_token(self, kid: str | None, alg: str) -> Any:
        """Return the key for ``kid``/``alg`` or raise ``TokenInvalid``."""
        ...


class CacheStore(Protocol):
    """Per-kid cache for resolved signing keys, with negative caching."""

    def get(self, kid: str) -> PyJWK | None: ...

    def set(self, key: PyJWK, ttl_seconds: int) -> None: ...

    def set_missing(self, kid: str, ttl_seconds: int) -> None: ...

    def is_missing(self, kid: str) -> bool: ...


# ============================================================================
# Flow state persistence
# ============================================================================


class Storage(Protocol):
    """Key/value capability used to persist flow state and the access token.

    Each method may return its result directly or return an awaitable; the
    session engine normalizes both through ``StorageAdapter``.
    """

    def get_item(self, key: str) -> MaybeAwaitable[str | None]: ...

    def set_item(self, key: str, value: str) -> MaybeAwaitable[None]: ...

    def remove_item(self, key: str) -> MaybeAwaitable[None]: ...


# ============================================================================
# Resource-server integration
# ============================================================================


class Authorizer(Protocol):
    """Checks verified claims against per-route requirements."""

    def authorize(
        self,
        claims: Claims,
        *,
        permissions: PermissionLevels,
        scopes: frozenset[str],
        require_all_permissions: bool,
    ) -> None:
        """Raise ``Forbidden`` if the claims do not satisfy the requirements.

        Implementations must fail closed when claims are missing or malformed.
        """
        ...


class Extractor(Protocol):
    """Pulls the raw token out of the current Flask request."""

    def extract(self) -> str:
        """Return the raw token or raise ``MissingToken``."""
        ...
