"""
Integration tests for the Authly demo Flask application.

Drives login -> callback -> profile -> logout through the real session engine,
with the provider's token and user-info endpoints served by an
httpx.MockTransport.
"""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from flask import Flask

import authly as m
from examples.authly_demo.login_provider import create_app


@pytest.fixture
def demo_app(options: m.AuthlyClientOptions, verifier: m.JWTVerifier, provider) -> Flask:
    app = create_app(
        options,
        verifier=verifier,
        transport=provider.transport,
        secret_key="test-secret-key",
        secure_cookies=False,
    )
    app.config["TESTING"] = True
    return app


def _login(client) -> str:
    response = client.get("/login")
    assert response.status_code == 302
    return parse_qs(urlsplit(response.headers["Location"]).query)["state"][0]


class TestHomeRoute:
    def test_anonymous(self, demo_app: Flask):
        response = demo_app.test_client().get("/")
        assert response.status_code == 200
        assert response.get_json() == {"authenticated": False, "state": "anonymous"}


class TestLoginFlow:
    def test_login_redirects_to_provider(self, demo_app: Flask):
        client = demo_app.test_client()

        response = client.get("/login")

        assert response.status_code == 302
        location = urlsplit(response.headers["Location"])
        assert location.netloc == "auth.example.com"
        assert location.path == "/authorize"
        query = parse_qs(location.query)
        assert query["client_id"] == ["test-service-id"]
        assert query["code_challenge_method"] == ["S256"]

        with client.session_transaction() as sess:
            assert sess[m.STATE_KEY] == query["state"][0]
            assert m.VERIFIER_KEY in sess

        assert client.get("/").get_json()["state"] == "authorization_pending"

    def test_callback_with_wrong_state_is_rejected(self, demo_app: Flask, provider):
        client = demo_app.test_client()
        _login(client)

        response = client.get("/callback?code=abc&state=forged")

        assert response.status_code == 400
        assert response.get_json() == {"error": "Bad Request", "description": "State mismatch"}
        assert provider.requests == []

    def test_callback_without_code(self, demo_app: Flask):
        client = demo_app.test_client()
        state = _login(client)

        assert client.get(f"/callback?state={state}").status_code == 400

    def test_full_flow(self, demo_app: Flask, provider, make_token):
        client = demo_app.test_client()
        access_token = make_token()
        state = _login(client)
        provider.respond("/oauth/token", provider.token_ok(access_token, refresh_token="RT-1"))
        provider.respond(
            "/oauth/userinfo",
            httpx.Response(200, json={"sub": "user123", "email": "user@example.com"}),
        )

        response = client.get(f"/callback?code=abc&state={state}")

        assert response.status_code == 302
        assert urlsplit(response.headers["Location"]).path == "/"
        with client.session_transaction() as sess:
            assert sess[m.ACCESS_TOKEN_KEY] == access_token
            assert m.STATE_KEY not in sess
            assert m.VERIFIER_KEY not in sess

        assert client.get("/").get_json() == {"authenticated": True, "state": "authenticated"}

        me = client.get("/me")
        assert me.status_code == 200
        assert me.get_json() == {"sub": "user123", "email": "user@example.com"}
        (userinfo,) = provider.calls("/oauth/userinfo")
        assert userinfo.headers["Authorization"] == f"Bearer {access_token}"

        assert client.get("/logout").status_code == 302
        assert client.get("/").get_json() == {"authenticated": False, "state": "anonymous"}

    def test_me_without_session(self, demo_app: Flask, provider):
        response = demo_app.test_client().get("/me")
        assert response.status_code == 401
        assert response.get_json()["description"] == "Not signed in"
        assert provider.requests == []


class TestDocumentsApi:
    def test_requires_token(self, demo_app: Flask):
        response = demo_app.test_client().get("/api/documents")
        assert response.status_code == 401
        assert response.get_json()["description"] == "Missing Authorization header"

    def test_valid_token(self, demo_app: Flask, make_token):
        response = demo_app.test_client().get(
            "/api/documents", headers={"Authorization": f"Bearer {make_token()}"}
        )
        assert response.status_code == 200
        assert response.get_json() == {"owner": "user123", "documents": []}

    def test_expired_token(self, demo_app: Flask, make_token):
        response = demo_app.test_client().get(
            "/api/documents", headers={"Authorization": f"Bearer {make_token(exp_delta=-60)}"}
        )
        assert response.status_code == 401
        assert response.get_json()["description"] == "Token has expired"

    def test_missing_permission(self, demo_app: Flask, make_token):
        token = make_token(permissions={"billing": 1})
        response = demo_app.test_client().get(
            "/api/documents", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403


def test_create_app_requires_secret_key(options: m.AuthlyClientOptions, verifier, monkeypatch):
    from examples.authly_demo import app_config

    monkeypatch.setattr(app_config, "SECRET_KEY", None)
    with pytest.raises(ValueError):
        create_app(options, verifier=verifier)
