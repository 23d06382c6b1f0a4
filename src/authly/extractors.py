"""Token extraction from Flask requests.

Implementations of the ``Extractor`` protocol used by ``AuthExtension``:

- ``BearerExtractor``: ``Authorization: Bearer <token>`` (APIs).
- ``CookieExtractor``: a named cookie (browser apps; pair with CSRF protection).

Tokens are never read from query parameters, which end up in access logs.
"""

from __future__ import annotations

from flask import request

from .errors import MissingToken


class BearerExtractor:
    """Reads the token from the Authorization header.

    Example:
        ```python
        auth = AuthExtension(verifier=verifier, extractor=BearerExtractor())
        ```

    Security Notes:
        - Bearer tokens should only travel over HTTPS.
        - Header-borne tokens are not sent automatically, so CSRF does not apply.
    """

    def extract(self) -> str:
        """Extract the token from an ``Authorization: Bearer`` header.

        Returns:
            Raw JWT string without the ``Bearer`` prefix.

        Raises:
            MissingToken: If the header is absent, uses another scheme, or
                carries an empty token.
        """
        auth_header = request.headers.get("Authorization", "").strip()
        if not auth_header:
            raise MissingToken("Missing Authorization header")

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer":
            raise MissingToken("Invalid authorization scheme (expected 'Bearer')")

        token = token.strip()
        if not token:
            raise MissingToken("Bearer token is empty")
        return token


class CookieExtractor:
    """Reads the token from a cookie, by default ``access_token``.

    Security Notes:
        - The cookie should be set with HttpOnly, Secure and SameSite.
        - Cookie-based auth is exposed to CSRF; protect state-changing routes.
    """

    def __init__(self, cookie_name: str = "access_token") -> None:
        """Initialize the extractor.

        Args:
            cookie_name: Name of the cookie holding the JWT.

        Raises:
            ValueError: If cookie_name is empty or blank.
        """
        if not cookie_name or not cookie_name.strip():
            raise ValueError("cookie_name cannot be empty")
        self._name = cookie_name

    def extract(self) -> str:
        """Extract the token from the configured cookie.

        Returns:
            Raw JWT string from the cookie value.

        Raises:
            MissingToken: If the cookie is absent or empty.

        Security Note:
            Cookie attributes are not visible on the request; only the value
            is read here.
        """
        token = request.cookies.get(self._name)
        if not token:
            raise MissingToken(f"Missing cookie '{self._name}'")
        return token
