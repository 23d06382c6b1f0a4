import os

from dotenv import load_dotenv

from authly import (
    AuthExtension,
    AuthlyClientOptions,
    InMemoryCache,
    JWTVerifier,
    JWTVerifyOptions,
    PermissionAuthorizer,
    RemoteJWKSProvider,
)

load_dotenv()

# permission bits for the "documents" resource
READ = 1
WRITE = 2


def load_options() -> AuthlyClientOptions:
    """AUTHLY_* variables, see AuthlyClientOptions.from_env."""
    return AuthlyClientOptions.from_env()


def build_verifier(options: AuthlyClientOptions) -> JWTVerifier:
    # one verifier per process so the JWKS cache is shared by all requests
    provider = RemoteJWKSProvider(options.jwks_endpoint, cache=InMemoryCache())
    return JWTVerifier(
        provider,
        JWTVerifyOptions(
            issuer=options.issuer,
            audience=options.audience,
            algorithms=options.algorithms,
        ),
    )


def build_auth(verifier: JWTVerifier) -> AuthExtension:
    return AuthExtension(verifier=verifier, authorizer=PermissionAuthorizer())


SECRET_KEY = os.environ.get("FLASK_SECRET_KEY")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("DEMO_CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
