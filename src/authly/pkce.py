"""PKCE (RFC 7636) verifier and challenge generation.

The randomness source and the digest function are injected so tests can pin
them. The defaults are ``secrets.SystemRandom`` and SHA-256; if the operating
system cannot supply secure randomness the generator refuses to exist rather
than falling back to a predictable source.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable, Sequence
from typing import Final, Protocol

from jwt.utils import base64url_encode

from .errors import ConfigurationError
from .models import PKCEPair

UNRESERVED_ALPHABET: Final[str] = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)
"""RFC 3986 unreserved characters allowed in a code verifier."""

MIN_VERIFIER_LENGTH: Final[int] = 43
MAX_VERIFIER_LENGTH: Final[int] = 128


class RandomSource(Protocol):
    def choice(self, seq: Sequence[str]) -> str: ...


def sha256_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _system_random() -> RandomSource:
    source = secrets.SystemRandom()
    try:
        # os.urandom raises NotImplementedError when no secure source exists
        source.getrandbits(8)
    except NotImplementedError as e:
        raise ConfigurationError("No secure random source is available") from e
    return source


class PKCEGenerator:
    """Produces code verifiers, state values and S256 challenges.

    Example:
        ```python
        pkce = PKCEGenerator()
        pair = pkce.generate_pair()
        # send pair.code_challenge with the authorize request,
        # keep pair.code_verifier for the code exchange only
        ```
    """

    def __init__(
        self,
        random_source: RandomSource | None = None,
        digest: Callable[[bytes], bytes] = sha256_digest,
    ) -> None:
        self._random = random_source if random_source is not None else _system_random()
        self._digest = digest

    def generate_verifier(self, length: int = MIN_VERIFIER_LENGTH) -> str:
        """Return ``length`` characters drawn uniformly from the unreserved alphabet.

        Raises:
            ValueError: If ``length`` is outside 43..128.
        """
        if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
            raise ValueError(
                f"verifier length must be between {MIN_VERIFIER_LENGTH} and "
                f"{MAX_VERIFIER_LENGTH}, got {length}"
            )
        return "".join(self._random.choice(UNRESERVED_ALPHABET) for _ in range(length))

    def generate_state(self) -> str:
        """Random CSRF state value, same alphabet as a verifier."""
        return self.generate_verifier(MIN_VERIFIER_LENGTH)

    def derive_challenge(self, verifier: str) -> str:
        """BASE64URL(SHA256(verifier)) without padding."""
        return base64url_encode(self._digest(verifier.encode("utf-8"))).decode("ascii")

    def generate_pair(self, length: int = MIN_VERIFIER_LENGTH) -> PKCEPair:
        verifier = self.generate_verifier(length)
        return PKCEPair(code_verifier=verifier, code_challenge=self.derive_challenge(verifier))
