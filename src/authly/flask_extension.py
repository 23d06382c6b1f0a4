"""Flask integration.

Resource-server side:
    ``AuthExtension.require(...)`` protects a view. Per request it extracts
    the token, verifies it, stores the claims in ``flask.g.jwt``, optionally
    checks permissions/scopes, and turns any ``AuthlyError`` into
    ``abort(status_code, description)`` (401, or 403 for ``Forbidden``).

Client side:
    ``FlaskSessionStorage`` lets ``AuthlyClient`` keep its flow state and
    access token in the signed per-user Flask session.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, current_app, g, session

from .errors import AuthlyError
from .extractors import BearerExtractor

if TYPE_CHECKING:
    from .protocols import Authorizer, Claims, Extractor, TokenVerifier, ViewFunc

_LOGGER = logging.getLogger(__name__)

_EXT_KEY: Final[str] = "authly"
"""Key under ``app.extensions``."""


class AuthExtension:
    """
    Decorator glue between Flask views and a ``TokenVerifier``.

    Usage:
        auth = AuthExtension(verifier, authorizer=PermissionAuthorizer())
        auth.init_app(app)

        @app.get("/documents")
        @auth.require(permissions={"documents": READ})
        def documents(): ...
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        authorizer: Authorizer | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier = verifier
        self._authorizer = authorizer
        self._extractor: Extractor = extractor or BearerExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: TokenVerifier | None = None,
        authorizer: Authorizer | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register on ``app``, optionally replacing collaborators."""
        if verifier is not None:
            self._verifier = verifier
        if authorizer is not None:
            self._authorizer = authorizer
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self

    def require(
        self,
        *,
        permissions: Mapping[str, int] | None = None,
        scopes: Sequence[str] = (),
        require_all_permissions: bool = True,
    ):
        """Protect a view.

        Args:
            permissions: Required ``{resource: level}`` bitmasks. Ignored when
                no authorizer is configured.
            scopes: Required scopes (all of them).
            require_all_permissions: All listed resources (True) or any one
                of them (False).

        Works on both ``def`` and ``async def`` views; async views run through
        ``Flask.ensure_sync`` and need the ``flask[async]`` extra.

        Error mapping:
            MissingToken / TokenExpired / TokenInvalid -> 401
            Forbidden -> 403
            anything unexpected -> 401 "Authentication failed"
        """
        required = dict(permissions or {})
        scopes_set = frozenset(scopes)

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    token = self._extractor.extract()
                    claims = self._verifier.verify(token)
                    g.jwt = claims

                    if self._authorizer:
                        self._authorizer.authorize(
                            claims,
                            permissions=required,
                            scopes=scopes_set,
                            require_all_permissions=require_all_permissions,
                        )
                except AuthlyError as e:
                    _LOGGER.debug("Request rejected: %r", e)
                    abort(e.status_code, description=e.description)
                except Exception:
                    _LOGGER.exception("Unexpected error while authenticating request")
                    abort(401, description="Authentication failed")

                return current_app.ensure_sync(view)(*args, **kwargs)

            return wrapper

        return decorator


def current_claims() -> Claims | None:
    """Claims verified for the current request, if a protected view is running."""
    return g.get("jwt")


class FlaskSessionStorage:
    """``Storage`` backed by ``flask.session``; needs an active request context."""

    def get_item(self, key: str) -> str | None:
        value = session.get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        session[key] = value

    def remove_item(self, key: str) -> None:
        session.pop(key, None)
