"""Error taxonomy for token verification and the authorization-code flow.

Every failure the library raises is an ``AuthlyError``. Each concrete error
carries a ``kind`` discriminant so callers can either catch a specific class or
catch the base class and branch on ``err.kind``.

Verification errors and flow-configuration errors are always raised to the
caller. Refresh and profile-fetch failures are not: those operations resolve to
``None`` instead (see ``AuthlyClient``).

Security Note:
    Messages are safe to log but should not be echoed verbatim to end users
    for verification failures. Distinguish ``TokenExpired`` from
    ``TokenInvalid`` so the caller can choose between "prompt re-login" and
    "reject".
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    """Discriminant carried by every ``AuthlyError``."""

    TOKEN_EXPIRED = "TokenExpired"
    TOKEN_INVALID = "TokenInvalid"
    CSRF = "CsrfError"
    PROTOCOL = "ProtocolError"
    CONFIGURATION = "ConfigurationError"
    MISSING_TOKEN = "MissingToken"
    FORBIDDEN = "Forbidden"


class AuthlyError(Exception):
    """Base exception for all Authly failures.

    Attributes:
        kind: Which failure this is.
        message: Human-readable reason.
        status_code: HTTP status a resource server should answer with.
    """

    kind: ClassVar[ErrorKind]
    status_code: ClassVar[int] = 401
    default_message: ClassVar[str] = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def description(self) -> str:
        """Text passed to ``flask.abort`` by the resource-server layer."""
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class TokenExpired(AuthlyError):  # noqa: N818
    """Raised only when verification failed because ``exp`` has passed."""

    kind = ErrorKind.TOKEN_EXPIRED
    default_message = "Token has expired"


class TokenInvalid(AuthlyError):  # noqa: N818
    """Raised for every other verification failure.

    This covers:
    - malformed compact tokens and undecodable headers
    - algorithms outside the allowed set
    - signature mismatch
    - issuer or audience mismatch, missing required claims
    - keys that cannot be resolved (including JWKS fetch failures)
    """

    kind = ErrorKind.TOKEN_INVALID
    default_message = "Invalid token"


class CsrfError(AuthlyError):
    """Raised when the callback ``state`` does not match the stored state."""

    kind = ErrorKind.CSRF
    status_code = 400
    default_message = "State mismatch"


class ProtocolError(AuthlyError):
    """Raised when the authorization-code flow cannot proceed.

    Missing ``code`` in the callback, a missing stored verifier, a missing
    redirect URI at exchange time, or a token endpoint that rejected the
    request all land here.
    """

    kind = ErrorKind.PROTOCOL
    status_code = 400
    default_message = "OAuth protocol error"


class ConfigurationError(AuthlyError):
    """Raised when required setup (storage, redirect URI, options) is missing."""

    kind = ErrorKind.CONFIGURATION
    status_code = 500
    default_message = "Invalid configuration"


class MissingToken(AuthlyError):  # noqa: N818
    """Raised by extractors when a request carries no usable token."""

    kind = ErrorKind.MISSING_TOKEN
    default_message = "Missing token"


class Forbidden(AuthlyError):  # noqa: N818
    """Raised when a verified token lacks the required permissions or scopes.

    This is the only error that maps to HTTP 403.
    """

    kind = ErrorKind.FORBIDDEN
    status_code = 403
    default_message = "Forbidden"
