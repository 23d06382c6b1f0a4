"""Client configuration.

``AuthlyClientOptions`` is the single place where the provider endpoints,
the expected token issuer/audience and the allowed algorithms are defined.
Endpoints are derived from the issuer base URL plus a path, matching how the
identity provider lays out its routes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_JWKS_PATH: Final[str] = "/.well-known/jwks.json"
DEFAULT_AUTHORIZE_PATH: Final[str] = "/authorize"
DEFAULT_TOKEN_PATH: Final[str] = "/oauth/token"
DEFAULT_USERINFO_PATH: Final[str] = "/oauth/userinfo"
DEFAULT_ALGORITHMS: Final[tuple[str, ...]] = ("RS256",)
DEFAULT_SCOPE: Final[str] = "openid profile email"
DEFAULT_HTTP_TIMEOUT: Final[float] = 10.0
DEFAULT_EXPIRY_SKEW: Final[int] = 10


@dataclass(frozen=True, slots=True)
class AuthlyClientOptions:
    """Configuration for ``AuthlyClient``.

    Attributes:
        issuer: Base URL of the identity provider, e.g.
            "https://auth.example.com". One trailing slash is stripped; the
            normalized value is both the expected ``iss`` claim and the prefix
            of every endpoint URL.
        audience: Expected ``aud`` claim.
        service_id: OAuth client id of this service.
        redirect_uri: Default callback URL for the authorization-code flow.
        jwks_path: JWKS path relative to the issuer.
        jwks_url: Absolute JWKS URL; overrides ``jwks_path`` when set.
        authorize_path: Authorization endpoint path.
        token_path: Token endpoint path.
        userinfo_path: User-info endpoint path.
        algorithms: Allowed signing algorithms. Never include "none".
        scope: Default scope requested by ``authorize``.
        http_timeout: Timeout in seconds for provider HTTP calls.
        expiry_skew_seconds: Margin used by ``is_authenticated`` so a token
            about to expire is already treated as expired.
    """

    issuer: str
    audience: str
    service_id: str
    redirect_uri: str | None = None
    jwks_path: str = DEFAULT_JWKS_PATH
    jwks_url: str | None = None
    authorize_path: str = DEFAULT_AUTHORIZE_PATH
    token_path: str = DEFAULT_TOKEN_PATH
    userinfo_path: str = DEFAULT_USERINFO_PATH
    algorithms: tuple[str, ...] = DEFAULT_ALGORITHMS
    scope: str = DEFAULT_SCOPE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    expiry_skew_seconds: int = DEFAULT_EXPIRY_SKEW

    def __post_init__(self) -> None:
        if not self.issuer:
            raise ConfigurationError("issuer is required")
        if not self.audience:
            raise ConfigurationError("audience is required")
        if not self.service_id:
            raise ConfigurationError("service_id is required")

        algorithms = tuple(self.algorithms)
        if not algorithms:
            raise ConfigurationError("algorithms must not be empty")
        if any(alg.lower() == "none" for alg in algorithms):
            raise ConfigurationError("'none' is not an acceptable signing algorithm")

        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "issuer", self.issuer.removesuffix("/"))
        object.__setattr__(self, "algorithms", algorithms)

    @property
    def jwks_endpoint(self) -> str:
        return self.jwks_url or f"{self.issuer}{self.jwks_path}"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.issuer}{self.authorize_path}"

    @property
    def token_endpoint(self) -> str:
        return f"{self.issuer}{self.token_path}"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.issuer}{self.userinfo_path}"

    @classmethod
    def from_env(cls, prefix: str = "AUTHLY_") -> AuthlyClientOptions:
        """Build options from environment variables (and a ``.env`` file).

        Recognized variables, with the default prefix:
        AUTHLY_ISSUER, AUTHLY_AUDIENCE, AUTHLY_SERVICE_ID, AUTHLY_REDIRECT_URI,
        AUTHLY_JWKS_URL, AUTHLY_JWKS_PATH, AUTHLY_AUTHORIZE_PATH,
        AUTHLY_TOKEN_PATH, AUTHLY_USERINFO_PATH, AUTHLY_ALGORITHMS
        (comma-separated) and AUTHLY_SCOPE.

        Raises:
            ConfigurationError: If a required variable is missing.
        """
        load_dotenv()

        def env(name: str) -> str | None:
            value = os.environ.get(f"{prefix}{name}")
            return value.strip() if value and value.strip() else None

        overrides: dict[str, object] = {}
        for field, var in (
            ("jwks_path", "JWKS_PATH"),
            ("authorize_path", "AUTHORIZE_PATH"),
            ("token_path", "TOKEN_PATH"),
            ("userinfo_path", "USERINFO_PATH"),
            ("scope", "SCOPE"),
        ):
            value = env(var)
            if value is not None:
                overrides[field] = value

        algorithms = env("ALGORITHMS")
        if algorithms is not None:
            overrides["algorithms"] = tuple(
                alg.strip() for alg in algorithms.split(",") if alg.strip()
            )

        return cls(
            issuer=env("ISSUER") or "",
            audience=env("AUDIENCE") or "",
            service_id=env("SERVICE_ID") or "",
            redirect_uri=env("REDIRECT_URI"),
            jwks_url=env("JWKS_URL"),
            **overrides,  # type: ignore[arg-type]
        )
