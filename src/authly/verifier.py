"""JWT verification using PyJWT.

Pipeline for ``JWTVerifier.verify``:

1. Read the unverified header and reject any ``alg`` outside the allowlist
   (never infer or downgrade an algorithm).
2. Resolve the key for the header's ``kid``/``alg`` through the KeyProvider.
3. ``jwt.decode``: signature first, then ``exp`` (against the current time),
   then ``iss`` (exact match), then ``aud`` (equality or membership).
4. Map PyJWT exceptions to exactly two outcomes: ``TokenExpired`` when the
   expiry check failed, ``TokenInvalid`` for everything else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import jwt

from .config import DEFAULT_ALGORITHMS
from .errors import TokenExpired, TokenInvalid

if TYPE_CHECKING:
    from .protocols import Claims, KeyProvider

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JWTVerifyOptions:
    """Validation rules for tokens issued by the identity provider.

    Attributes:
        issuer: Expected ``iss``, compared by exact string equality.
        audience: Expected ``aud``. A token whose ``aud`` is a list passes
            when the list contains this value.
        algorithms: Explicit allowlist. Defaults to RS256 only.
        leeway: Clock skew tolerance in seconds. Defaults to 0: a token is
            expired as soon as ``exp <= now``.
        required_claims: Claims that must be present.

    Security Invariants:
        - Keep ``algorithms`` to asymmetric algorithms for provider tokens.
        - ``none`` is never accepted (PyJWT refuses it with a real key).
    """

    issuer: str
    audience: str
    algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS
    leeway: int = 0
    required_claims: tuple[str, ...] = ("exp", "iss", "aud")


class JWTVerifier:
    """Verifies compact JWS tokens against a KeyProvider.

    Example:
        ```python
        verifier = JWTVerifier(
            RemoteJWKSProvider("https://auth.example.com/.well-known/jwks.json"),
            JWTVerifyOptions(issuer="https://auth.example.com", audience="my-api"),
        )
        try:
            claims = verifier.verify(raw_token)
        except TokenExpired:
            ...  # prompt re-login
        except TokenInvalid:
            ...  # reject
        ```

    Thread Safety:
        Safe to share between threads when the KeyProvider is.
    """

    def __init__(self, key_provider: KeyProvider, options: JWTVerifyOptions) -> None:
        self._keys = key_provider
        self._opt = options

    @property
    def options(self) -> JWTVerifyOptions:
        return self._opt

    def verify(self, token: str) -> Claims:
        """Verify ``token`` and return its claims.

        Raises:
            TokenExpired: The ``exp`` claim is not in the future. The message is
                always "Token has expired".
            TokenInvalid: Malformed token, disallowed algorithm, unresolvable
                key, bad signature, wrong issuer or audience, missing claims.
        """
        if not isinstance(token, str) or not token:
            raise TokenInvalid("Token must be a non-empty string")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise TokenInvalid(f"Malformed token header: {e}") from e

        alg = header.get("alg")
        if not isinstance(alg, str) or alg not in self._opt.algorithms:
            raise TokenInvalid(f"Token algorithm {alg!r} is not allowed")

        kid = header.get("kid")
        if kid is not None and not isinstance(kid, str):
            raise TokenInvalid("Token header 'kid' must be a string")

        try:
            key = self._keys.get_key_for_token(kid, alg)
        except TokenInvalid:
            raise
        except Exception as e:
            raise TokenInvalid(f"Key resolution failed: {e}") from e

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[alg],
                audience=self._opt.audience,
                issuer=self._opt.issuer,
                leeway=self._opt.leeway,
                options={"require": list(self._opt.required_claims)},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired("Token has expired") from e
        except jwt.PyJWTError as e:
            _LOGGER.debug("Token rejected: %s", e)
            raise TokenInvalid(f"Token validation failed: {e}") from e
        except (TypeError, ValueError) as e:
            # key objects of the wrong family for the algorithm
            raise TokenInvalid(f"Token validation failed: {e}") from e

        return claims
