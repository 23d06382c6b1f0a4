"""
Remote JWKS key provider.

Resolves signing keys from the identity provider's published key set with
per-kid caching, negative caching and throttled forced refreshes.
"""

from __future__ import annotations

import logging

from jwt import PyJWK, PyJWKClient

from ..cache_stores import InMemoryCache
from ..errors import TokenInvalid
from ..protocols import CacheStore
from ..refresh_gate import RefreshGate

_LOGGER = logging.getLogger(__name__)


class RemoteJWKSProvider:
    """
    Resolves the verification key for a token from a remote JWKS document.

    Resolution Strategy
    -------------------
    For a header with a ``kid``:

    1) Cache lookup
        - cached key → return it
        - kid cached as missing → fail immediately

    2) Normal resolution
        - ``PyJWKClient.get_signing_key(kid)``; PyJWT refetches the set once
          on a miss.

    3) Forced refresh (rate-limited by ``RefreshGate``)
        - refetch the set and retry once; otherwise fail fast.

    For a header without a ``kid`` the set must contain exactly one signing
    key usable with the header's algorithm.

    Every failure, network errors included, surfaces as ``TokenInvalid``.

    Parameters
    ----------
    jwks_url : str
        Absolute URL of the key set, usually ``{issuer}/.well-known/jwks.json``.
    cache : CacheStore
        Per-kid cache; defaults to a fresh ``InMemoryCache``.
    ttl_seconds : int
        TTL of resolved keys (also the lifespan of PyJWT's own set cache).
    missing_ttl_seconds : int
        TTL of negative entries.
    min_interval : float
        Minimum seconds between forced refreshes.
    alert_threshold : int
        Throttled attempts before a warning is logged.
    timeout : float
        HTTP timeout for fetching the set.
    """

    def __init__(
        self,
        jwks_url: str,
        cache: CacheStore | None = None,
        ttl_seconds: int = 600,
        missing_ttl_seconds: int = 30,
        min_interval: float = 60.0,
        alert_threshold: int = 40,
        timeout: float = 10.0,
    ) -> None:
        self._ttl = ttl_seconds
        self._missing_ttl = missing_ttl_seconds
        self._cache: CacheStore = cache or InMemoryCache()
        self._gate = RefreshGate(min_interval=min_interval, alert_threshold=alert_threshold)
        self._client = PyJWKClient(
            jwks_url,
            cache_jwk_set=True,
            lifespan=ttl_seconds,
            timeout=timeout,
        )

    def get_key_for_token(self, kid: str | None, alg: str) -> PyJWK:
        if kid is None:
            return self._sole_key_for(alg)

        if self._cache.is_missing(kid):
            raise TokenInvalid("Unknown signing key (cached)")

        cached = self._cache.get(kid)
        if cached is not None:
            return cached

        try:
            return self._remember(self._client.get_signing_key(kid))
        except Exception as e:
            _LOGGER.debug("Signing key %r not found in JWKS: %s", kid, e)
            self._cache.set_missing(kid, ttl_seconds=self._missing_ttl)

        if not self._gate.allow():
            raise TokenInvalid("Signing key refresh throttled")

        try:
            self._client.get_signing_keys(refresh=True)
            return self._remember(self._client.get_signing_key(kid))
        except Exception as e:
            self._cache.set_missing(kid, ttl_seconds=self._missing_ttl)
            raise TokenInvalid("Unable to resolve signing key") from e

    def _remember(self, key: PyJWK) -> PyJWK:
        self._cache.set(key, ttl_seconds=self._ttl)
        return key

    def _sole_key_for(self, alg: str) -> PyJWK:
        try:
            jwk_set = self._client.get_jwk_set()
        except Exception as e:
            raise TokenInvalid("Unable to fetch signing keys") from e

        candidates = [
            key
            for key in jwk_set.keys
            if key.public_key_use in ("sig", None) and key.algorithm_name == alg
        ]
        if len(candidates) != 1:
            raise TokenInvalid("Token has no kid and no unambiguous signing key exists")
        return candidates[0]
