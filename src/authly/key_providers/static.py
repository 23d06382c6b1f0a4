"""Key providers that do not touch the network."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..errors import TokenInvalid


class StaticKeyProvider:
    """Always returns the same key.

    Args:
        key: Anything ``jwt.decode`` accepts (public key object, PEM, ``PyJWK``).
        kid: If set, tokens whose header names a different ``kid`` are rejected.
    """

    def __init__(self, key: Any, kid: str | None = None) -> None:
        self._key = key
        self._kid = kid

    def get_key_for_token(self, kid: str | None, alg: str) -> Any:
        if self._kid is not None and kid != self._kid:
            raise TokenInvalid("Unknown signing key")
        return self._key


class CallableKeyProvider:
    """Delegates resolution to ``resolve(kid, alg)``.

    Whatever the function raises is reported as ``TokenInvalid``.
    """

    def __init__(self, resolve: Callable[[str | None, str], Any]) -> None:
        self._resolve = resolve

    def get_key_for_token(self, kid: str | None, alg: str) -> Any:
        try:
            key = self._resolve(kid, alg)
        except TokenInvalid:
            raise
        except Exception as e:
            raise TokenInvalid(f"Key resolution failed: {e}") from e
        if key is None:
            raise TokenInvalid("Unknown signing key")
        return key
