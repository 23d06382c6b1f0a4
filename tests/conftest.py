import json
import time
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask
from jwt import PyJWK
from jwt.algorithms import RSAAlgorithm
from jwt.utils import base64url_encode

import authly as m

ISSUER = "https://auth.example.com"
AUDIENCE = "test-audience"
SERVICE_ID = "test-service-id"
REDIRECT_URI = "https://app.example.com/callback"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def make_token(rsa_private_key: rsa.RSAPrivateKey):
    """
    Factory fixture that signs a token for the test issuer/audience.

    Usage in tests:
        token = make_token(exp_delta=-1, aud="someone-else")
    """

    def _make(
        *,
        key: Any = None,
        kid: str | None = "k1",
        algorithm: str = "RS256",
        exp_delta: int | None = 3600,
        **claims: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "sub": "user123",
            "sid": "session123",
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": now,
            "permissions": {"documents": 3},
        }
        if exp_delta is not None:
            payload["exp"] = now + exp_delta
        payload.update(claims)
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(payload, key or rsa_private_key, algorithm=algorithm, headers=headers)

    return _make


@pytest.fixture
def rsa_jwk(rsa_private_key: rsa.RSAPrivateKey) -> PyJWK:
    """The test public key as a signing JWK, the shape a JWKS endpoint serves."""
    jwk_dict = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    jwk_dict.update(kid="k1", alg="RS256", use="sig")
    return PyJWK.from_dict(jwk_dict)


@pytest.fixture
def verifier(rsa_private_key: rsa.RSAPrivateKey) -> m.JWTVerifier:
    return m.JWTVerifier(
        m.StaticKeyProvider(rsa_private_key.public_key()),
        m.JWTVerifyOptions(issuer=ISSUER, audience=AUDIENCE),
    )


@pytest.fixture
def options() -> m.AuthlyClientOptions:
    return m.AuthlyClientOptions(
        issuer=ISSUER,
        audience=AUDIENCE,
        service_id=SERVICE_ID,
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def make_oct_jwk():
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk = make_oct_jwk(kid="k1")
    """

    def _make(*, kid: str = "kid1", secret: bytes = b"supersecret") -> PyJWK:
        jwk_dict = {
            "kty": "oct",
            "kid": kid,
            "k": base64url_encode(secret).decode("ascii"),
            "alg": "HS256",
            "use": "sig",
        }
        return PyJWK.from_dict(jwk_dict)

    return _make


class FakeRedis:
    """
    Minimal redis stub.
    Stores bytes under keys and supports get/set/setex/delete.
    """

    def __init__(self):
        self._store: dict[str, tuple[bytes, float | None]] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str):
        item = self._store.get(key)
        if item is None:
            return None
        data, expires_at = item
        if expires_at is not None and time.time() >= expires_at:
            self._store.pop(key, None)
            return None
        return data

    def set(self, key: str, value: str | bytes):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._store[key] = (value, None)

    def setex(self, key: str, ttl_seconds: int, value: str | bytes):
        self.set(key, value)
        self._store[key] = (self._store[key][0], time.time() + int(ttl_seconds))
        self.ttls[key] = int(ttl_seconds)

    def delete(self, key: str):
        self._store.pop(key, None)


class AsyncFakeRedis:
    """Coroutine flavour of FakeRedis, shaped like redis.asyncio.Redis."""

    def __init__(self):
        self.sync = FakeRedis()

    async def get(self, key: str):
        return self.sync.get(key)

    async def set(self, key: str, value: str | bytes):
        self.sync.set(key, value)

    async def setex(self, key: str, ttl_seconds: int, value: str | bytes):
        self.sync.setex(key, ttl_seconds, value)

    async def delete(self, key: str):
        self.sync.delete(key)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def async_fake_redis() -> AsyncFakeRedis:
    return AsyncFakeRedis()


class FakeProvider:
    """
    Token and user-info endpoints behind an httpx.MockTransport.

    Responses are queued per path; once a queue is down to its last entry that
    entry keeps being served. Every request is recorded.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._responses: dict[str, list[httpx.Response | Exception]] = {}
        self.transport = httpx.MockTransport(self._handle)

    def respond(self, path: str, *responses: httpx.Response | Exception) -> None:
        self._responses[path] = list(responses)

    def token_ok(self, access_token: str, **extra: Any) -> httpx.Response:
        body = {"access_token": access_token, "token_type": "Bearer", "expires_in": 3600}
        body.update(extra)
        return httpx.Response(200, json=body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        from urllib.parse import parse_qsl

        return dict(parse_qsl(request.content.decode("utf-8")))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._responses.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": "not_found"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_client(options: m.AuthlyClientOptions, verifier: m.JWTVerifier, provider: FakeProvider):
    def _make(*, storage: Any = "default", **kwargs: Any) -> m.AuthlyClient:
        if storage == "default":
            storage = m.InMemoryStorage()
        kwargs.setdefault("verifier", verifier)
        kwargs.setdefault("transport", provider.transport)
        return m.AuthlyClient(options, storage=storage, **kwargs)

    return _make


@pytest.fixture
def unsigned_token():
    """Structurally valid JWT with a throwaway HMAC signature (for decode-only paths)."""

    def _make(claims: dict[str, Any]) -> str:
        return jwt.encode(claims, "not-a-real-secret-but-long-enough-32b", algorithm="HS256")

    return _make
