"""
Authly demo - Flask application

Browser login through the authorization-code flow with PKCE, plus a small
API protected by access-token verification.

Routes:
    /            session status
    /login       start the flow, redirect to the provider
    /callback    exchange the code, redirect home
    /me          profile from the provider's user-info endpoint
    /logout      forget the session
    /api/documents  bearer-protected, needs the "documents" READ bit
"""

from __future__ import annotations

import httpx
from flask import Flask, abort, g, jsonify, redirect, request, url_for
from flask_cors import CORS

from authly import (
    AuthlyClient,
    AuthlyClientOptions,
    AuthlyError,
    FlaskSessionStorage,
    TokenVerifier,
    current_claims,
)

from . import app_config


def create_app(
    options: AuthlyClientOptions | None = None,
    *,
    verifier: TokenVerifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    secret_key: str | None = None,
    secure_cookies: bool = True,
) -> Flask:
    """
    Create the demo application.

    Args:
        options: Provider configuration; read from the environment if omitted.
        verifier: Shared access-token verifier; built from ``options`` if omitted.
        transport: httpx transport used for provider calls (tests).
        secret_key: Flask session key; FLASK_SECRET_KEY if omitted.
        secure_cookies: Mark the session cookie Secure (HTTPS only).
    """
    app = Flask(__name__)

    options = options or app_config.load_options()
    secret_key = secret_key or app_config.SECRET_KEY
    if not secret_key:
        raise ValueError("FLASK_SECRET_KEY is required")
    app.secret_key = secret_key

    app.config.update(
        SESSION_COOKIE_SECURE=secure_cookies,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_HTTPONLY=True,
    )
    CORS(app, origins=app_config.CORS_ORIGINS, supports_credentials=True)

    verifier = verifier or app_config.build_verifier(options)
    auth = app_config.build_auth(verifier)
    auth.init_app(app)

    def authly() -> AuthlyClient:
        # per request: the in-memory token cache must not leak between users
        if "authly_client" not in g:
            g.authly_client = AuthlyClient(
                options,
                storage=FlaskSessionStorage(),
                verifier=verifier,
                transport=transport,
            )
        return g.authly_client

    # ==================== Routes ====================

    @app.get("/")
    async def home():
        client = authly()
        return jsonify(
            authenticated=await client.is_authenticated(),
            state=(await client.get_state()).value,
        )

    @app.get("/login")
    async def login():
        return redirect(await authly().authorize())

    @app.get("/callback")
    async def callback():
        try:
            await authly().exchange_token(request.args)
        except AuthlyError as e:
            app.logger.warning("Login callback failed: %r", e)
            abort(e.status_code, description=e.description)
        return redirect(url_for("home"))

    @app.get("/me")
    async def me():
        profile = await authly().get_user()
        if profile is None:
            abort(401, description="Not signed in")
        return jsonify(profile.to_dict())

    @app.get("/logout")
    async def logout():
        await authly().logout()
        return redirect(url_for("home"))

    @app.get("/api/documents")
    @auth.require(permissions={"documents": app_config.READ})
    def documents():
        claims = current_claims() or {}
        return jsonify(owner=claims.get("sub"), documents=[])

    # ==================== Error Handlers ====================

    @app.errorhandler(400)
    @app.errorhandler(401)
    @app.errorhandler(403)
    def auth_error(error):
        return jsonify(error=error.name, description=error.description), error.code

    return app
