"""
Authly identity-provider client.

Two halves
----------
Token verification
    ``JWTVerifier.verify(token)`` checks a provider-issued access token:
    - reads the unverified header, rejects algorithms outside the allowlist
    - resolves the key through a KeyProvider (remote JWKS, cached)
    - verifies signature, then ``exp``, ``iss``, ``aud``
    - raises ``TokenExpired`` for expiry, ``TokenInvalid`` for anything else

Session lifecycle
    ``AuthlyClient`` drives the OAuth2 authorization-code flow with PKCE:
    ``authorize()`` → provider login → ``exchange_token(callback)`` →
    cached access token → ``get_user()`` (refresh-and-retry once on 401) →
    ``logout()``.

Security notes
--------------
- ``is_authenticated()`` is a UX hint; trust decisions belong to ``verify()``.
- The CSRF ``state`` is checked before the code is sent anywhere.
- The PKCE verifier only leaves the process in the token request body.

Example usage
-------------

.. code-block:: python

    from authly import AuthlyClient, AuthlyClientOptions, InMemoryStorage

    client = AuthlyClient(
        AuthlyClientOptions(
            issuer="https://auth.example.com",
            audience="my-api",
            service_id="my-service",
            redirect_uri="https://app.example.com/callback",
        ),
        storage=InMemoryStorage(),
    )

    url = await client.authorize()
    ...
    await client.exchange_token("https://app.example.com/callback?code=...&state=...")
    claims = await client.verify(await client.get_access_token())
"""

# Authorization
from .authorization import ClaimAccess, ClaimsMapping, PermissionAuthorizer

# Key caches
from .cache_stores import InMemoryCache, RedisCache

# Session engine
from .client import ACCESS_TOKEN_KEY, REDIRECT_URI_KEY, STATE_KEY, VERIFIER_KEY, AuthlyClient

# Configuration
from .config import AuthlyClientOptions

# Errors
from .errors import (
    AuthlyError,
    ConfigurationError,
    CsrfError,
    ErrorKind,
    Forbidden,
    MissingToken,
    ProtocolError,
    TokenExpired,
    TokenInvalid,
)

# Extractors
from .extractors import BearerExtractor, CookieExtractor

# Flask integration
from .flask_extension import AuthExtension, FlaskSessionStorage, current_claims

# Key providers
from .key_providers import CallableKeyProvider, RemoteJWKSProvider, StaticKeyProvider

# Models
from .models import PKCEPair, SessionState, TokenResponse, UserProfile

# PKCE
from .pkce import PKCEGenerator

# Protocols
from .protocols import (
    Authorizer,
    CacheStore,
    Claims,
    Extractor,
    KeyProvider,
    Storage,
    TokenVerifier,
    ViewFunc,
)

# Refresh gate
from .refresh_gate import RefreshGate

# Storage
from .storage import AsyncRedisStorage, InMemoryStorage, RedisStorage, StorageAdapter

# Verifier
from .verifier import JWTVerifier, JWTVerifyOptions

__all__ = [
    # Session engine
    "AuthlyClient",
    "ACCESS_TOKEN_KEY",
    "REDIRECT_URI_KEY",
    "STATE_KEY",
    "VERIFIER_KEY",
    # Configuration
    "AuthlyClientOptions",
    # Errors
    "AuthlyError",
    "ConfigurationError",
    "CsrfError",
    "ErrorKind",
    "Forbidden",
    "MissingToken",
    "ProtocolError",
    "TokenExpired",
    "TokenInvalid",
    # Models
    "PKCEPair",
    "SessionState",
    "TokenResponse",
    "UserProfile",
    # PKCE
    "PKCEGenerator",
    # Protocols
    "Authorizer",
    "CacheStore",
    "Claims",
    "Extractor",
    "KeyProvider",
    "Storage",
    "TokenVerifier",
    "ViewFunc",
    # Verifier
    "JWTVerifier",
    "JWTVerifyOptions",
    # Key providers
    "CallableKeyProvider",
    "RemoteJWKSProvider",
    "StaticKeyProvider",
    # Key caches
    "InMemoryCache",
    "RedisCache",
    # Refresh gate
    "RefreshGate",
    # Storage
    "AsyncRedisStorage",
    "InMemoryStorage",
    "RedisStorage",
    "StorageAdapter",
    # Extractors
    "BearerExtractor",
    "CookieExtractor",
    # Authorization
    "ClaimAccess",
    "ClaimsMapping",
    "PermissionAuthorizer",
    # Flask integration
    "AuthExtension",
    "FlaskSessionStorage",
    "current_claims",
]
