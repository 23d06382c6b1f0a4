"""Session engine: authorization-code flow with PKCE, token caching, refresh.

States
------
``ANONYMOUS`` → ``authorize()`` persists state + verifier and returns the
provider URL → ``AUTHORIZATION_PENDING`` → the provider redirects back and
``exchange_token()`` trades the code for tokens → ``AUTHENTICATED`` → back to
``ANONYMOUS`` on ``logout()`` or when ``get_user()`` hits an authorization
failure that a refresh cannot fix.

Concurrency
-----------
All methods are coroutines meant for one event loop. Nothing here is locked:
concurrent refreshes are not coalesced (each response replaces the cached
session wholesale), and a second ``authorize()`` overwrites a pending flow.
The storage backend may be shared with other tabs or workers; races through
it are the integrating application's concern.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import parse_qsl, urlsplit

import httpx
import jwt
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri, prepare_token_request

from .config import AuthlyClientOptions
from .errors import ConfigurationError, CsrfError, ProtocolError
from .key_providers import RemoteJWKSProvider
from .models import SessionState, TokenResponse, UserProfile
from .pkce import PKCEGenerator
from .protocols import Claims, KeyProvider, Storage, TokenVerifier
from .storage import StorageAdapter
from .verifier import JWTVerifier, JWTVerifyOptions

_LOGGER = logging.getLogger(__name__)

STATE_KEY = "authly_state"
VERIFIER_KEY = "authly_code_verifier"
REDIRECT_URI_KEY = "authly_redirect_uri"
ACCESS_TOKEN_KEY = "authly_access_token"

CODE_CHALLENGE_METHODS = ("S256", "plain")

_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class _Unauthorized(Exception):
    """User-info endpoint answered 401."""


class AuthlyClient:
    """Client for an Authly identity provider.

    Args:
        options: Provider endpoints and token expectations.
        storage: Backend for flow state and the access token. Required by
            ``authorize`` and ``exchange_token``; optional otherwise.
        verifier: Token verifier; built from ``options`` and ``key_provider``
            when omitted.
        key_provider: Key source for the default verifier; defaults to a
            ``RemoteJWKSProvider`` on ``options.jwks_endpoint``.
        pkce: PKCE generator (randomness and digest capabilities).
        transport: ``httpx`` transport for provider calls; tests pass an
            ``httpx.MockTransport``.
        clock: Returns the current Unix time; used by ``is_authenticated``.

    Example:
        ```python
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
        # ... user comes back to the redirect URI ...
        await client.exchange_token(callback_query)
        profile = await client.get_user()
        ```
    """

    def __init__(
        self,
        options: AuthlyClientOptions,
        *,
        storage: Storage | None = None,
        verifier: TokenVerifier | None = None,
        key_provider: KeyProvider | None = None,
        pkce: PKCEGenerator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._opt = options
        self._storage = StorageAdapter(storage) if storage is not None else None
        self._verifier = verifier or JWTVerifier(
            key_provider or RemoteJWKSProvider(options.jwks_endpoint),
            JWTVerifyOptions(
                issuer=options.issuer,
                audience=options.audience,
                algorithms=options.algorithms,
            ),
        )
        self._pkce = pkce
        self._transport = transport
        self._clock = clock
        self._session: TokenResponse | None = None
        self._access_token: str | None = None

    @property
    def options(self) -> AuthlyClientOptions:
        return self._opt

    @property
    def session(self) -> TokenResponse | None:
        """Latest token response obtained by this instance, if any."""
        return self._session

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, token: str) -> Claims:
        """Verify ``token`` against the provider's keys.

        Runs the synchronous verifier in a worker thread since resolving a
        key may fetch the JWKS document.

        Raises:
            TokenExpired: The token's ``exp`` has passed.
            TokenInvalid: Any other verification failure.
        """
        return await asyncio.to_thread(self._verifier.verify, token)

    # ------------------------------------------------------------------
    # Authorization request
    # ------------------------------------------------------------------

    def get_authorize_url(
        self,
        *,
        redirect_uri: str,
        state: str,
        code_challenge: str,
        code_challenge_method: str = "S256",
        scope: str | None = None,
        response_type: str = "code",
    ) -> str:
        """Build the provider authorization URL. Pure: no storage, no network.

        Raises:
            ConfigurationError: For a challenge method other than S256/plain.
        """
        if code_challenge_method not in CODE_CHALLENGE_METHODS:
            raise ConfigurationError(
                f"Unsupported code_challenge_method {code_challenge_method!r}"
            )
        return prepare_grant_uri(
            self._opt.authorize_endpoint,
            client_id=self._opt.service_id,
            response_type=response_type,
            redirect_uri=redirect_uri,
            scope=scope or self._opt.scope,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    async def authorize(
        self,
        *,
        redirect_uri: str | None = None,
        state: str | None = None,
        scope: str | None = None,
        response_type: str = "code",
    ) -> str:
        """Start a flow: persist state and verifier, return the authorize URL.

        Navigating to the URL is the caller's job. Calling this again before
        the callback arrives replaces the pending flow.

        Raises:
            ConfigurationError: No storage, or no redirect URI given or
                configured. Checked before any randomness is drawn.
        """
        storage = self._require_storage()
        redirect_uri = redirect_uri or self._opt.redirect_uri
        if not redirect_uri:
            raise ConfigurationError("authorize() requires a redirect_uri")

        pkce = self._pkce_generator()
        state = state or pkce.generate_state()
        pair = pkce.generate_pair()

        await storage.set_item(STATE_KEY, state)
        await storage.set_item(VERIFIER_KEY, pair.code_verifier)
        await storage.set_item(REDIRECT_URI_KEY, redirect_uri)
        _LOGGER.debug("Authorization flow started")

        return self.get_authorize_url(
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=pair.code_challenge,
            scope=scope,
            response_type=response_type,
        )

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    async def exchange_token(
        self,
        callback_params: Mapping[str, str] | str,
        *,
        redirect_uri: str | None = None,
    ) -> TokenResponse:
        """Complete the flow started by ``authorize()``.

        Args:
            callback_params: The callback query as a mapping (e.g. Flask's
                ``request.args``), a raw query string, or the full callback URL.
            redirect_uri: Must equal the one sent to ``authorize()``; defaults
                to the redirect URI stored by ``authorize()``, then to the
                configured one.

        Raises:
            ConfigurationError: No storage configured.
            ProtocolError: Missing ``code``, missing stored verifier, no
                redirect URI, or the token endpoint rejected the exchange.
            CsrfError: ``state`` differs from the stored state (or none is
                stored). Checked before any network call.
        """
        storage = self._require_storage()
        params = _callback_params(callback_params)

        code = params.get("code")
        if not code:
            raise ProtocolError("Callback is missing the authorization code")

        expected_state = await storage.get_item(STATE_KEY)
        if expected_state is None or params.get("state") != expected_state:
            _LOGGER.warning("Authorization callback state mismatch")
            raise CsrfError("State mismatch")

        code_verifier = await storage.get_item(VERIFIER_KEY)
        if not code_verifier:
            raise ProtocolError("No code verifier stored for this flow")

        redirect_uri = (
            redirect_uri
            or await storage.get_item(REDIRECT_URI_KEY)
            or self._opt.redirect_uri
        )
        if not redirect_uri:
            raise ProtocolError("Code exchange requires a redirect_uri")

        try:
            token = await self._request_token(
                "authorization_code",
                code=code,
                redirect_uri=redirect_uri,
                client_id=self._opt.service_id,
                code_verifier=code_verifier,
            )
        except ProtocolError:
            await self._clear_flow_state()
            raise

        # flow state survives a failed write so the exchange can be retried
        await self._store_session(token)
        await self._clear_flow_state()
        _LOGGER.debug("Authorization code exchanged")
        return token

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def get_access_token(self) -> str | None:
        """Cached access token, memory first, then storage. Expiry is not checked."""
        if self._access_token is not None:
            return self._access_token
        if self._storage is None:
            return None
        self._access_token = await self._storage.get_item(ACCESS_TOKEN_KEY)
        return self._access_token

    async def refresh_token(self, refresh_token: str | None = None) -> str | None:
        """Obtain a new access token with the refresh_token grant.

        Uses ``refresh_token`` if given, else the one from the latest token
        response (if any). Failure is an expected outcome and returns None,
        including when the new access token cannot be written to storage; the
        previous session is then left as it was.
        """
        refresh_token = refresh_token or (self._session.refresh_token if self._session else None)
        try:
            token = await self._request_token(
                "refresh_token",
                client_id=self._opt.service_id,
                refresh_token=refresh_token,
            )
        except ProtocolError as e:
            _LOGGER.warning("Token refresh failed: %s", e.message)
            return None

        try:
            await self._store_session(token)
        except Exception:
            _LOGGER.warning("Refreshed access token could not be stored", exc_info=True)
            return None

        _LOGGER.debug("Access token refreshed")
        return token.access_token

    async def get_user(self) -> UserProfile | None:
        """Fetch the profile of the current user.

        On a 401 the token is refreshed once and the request retried once.
        If that cannot succeed the session is cleared. Other failures return
        None and leave the session alone.
        """
        try:
            access_token = await self.get_access_token()
        except Exception:
            _LOGGER.warning("Could not read the stored access token", exc_info=True)
            return None
        if access_token is None:
            return None

        try:
            return await self._fetch_profile(access_token)
        except _Unauthorized:
            _LOGGER.debug("User-info rejected the access token; refreshing")
        except ProtocolError as e:
            _LOGGER.warning("User-info request failed: %s", e.message)
            return None

        access_token = await self.refresh_token()
        if access_token is None:
            await self.logout()
            return None

        try:
            return await self._fetch_profile(access_token)
        except _Unauthorized:
            _LOGGER.warning("User-info rejected a freshly refreshed token")
            await self.logout()
        except ProtocolError as e:
            _LOGGER.warning("User-info request failed: %s", e.message)
        return None

    async def is_authenticated(self) -> bool:
        """Local hint: is there a cached token that is not about to expire?

        The signature is NOT checked. Never use this to make a trust
        decision; use ``verify()`` or the provider for that.
        """
        access_token = await self.get_access_token()
        if not access_token:
            return False

        try:
            claims = jwt.decode(access_token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return False

        exp = claims.get("exp")
        if exp is None:
            return True
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return False
        return exp > self._clock() + self._opt.expiry_skew_seconds

    async def get_state(self) -> SessionState:
        if await self.get_access_token():
            return SessionState.AUTHENTICATED
        if self._storage is not None and await self._storage.get_item(STATE_KEY):
            return SessionState.AUTHORIZATION_PENDING
        return SessionState.ANONYMOUS

    async def logout(self) -> None:
        """Forget the session in memory and in storage. Never raises."""
        self._session = None
        self._access_token = None
        if self._storage is not None:
            try:
                await self._storage.remove_item(ACCESS_TOKEN_KEY)
            except Exception:
                _LOGGER.warning("Failed to remove the stored access token", exc_info=True)
        _LOGGER.info("Session cleared")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_storage(self) -> StorageAdapter:
        if self._storage is None:
            raise ConfigurationError("A storage backend is required for the authorization flow")
        return self._storage

    def _pkce_generator(self) -> PKCEGenerator:
        if self._pkce is None:
            self._pkce = PKCEGenerator()
        return self._pkce

    async def _store_session(self, token: TokenResponse) -> None:
        # persist first: memory only changes once storage agrees
        if self._storage is not None:
            await self._storage.set_item(ACCESS_TOKEN_KEY, token.access_token)
        self._session = token
        self._access_token = token.access_token

    async def _clear_flow_state(self) -> None:
        if self._storage is None:
            return
        await self._storage.remove_item(STATE_KEY)
        await self._storage.remove_item(VERIFIER_KEY)
        await self._storage.remove_item(REDIRECT_URI_KEY)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._opt.http_timeout)

    async def _request_token(self, grant_type: str, **params: Any) -> TokenResponse:
        redirect_uri = params.pop("redirect_uri", None)
        body = prepare_token_request(grant_type, redirect_uri=redirect_uri, **params)

        try:
            async with self._http() as http:
                response = await http.post(
                    self._opt.token_endpoint, content=body, headers=_FORM_HEADERS
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProtocolError(
                f"Token endpoint returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProtocolError(f"Token endpoint unreachable: {e}") from e
        except ValueError as e:
            raise ProtocolError("Token endpoint returned invalid JSON") from e

        return TokenResponse.from_dict(data)

    async def _fetch_profile(self, access_token: str) -> UserProfile:
        try:
            async with self._http() as http:
                response = await http.get(
                    self._opt.userinfo_endpoint,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise ProtocolError(f"User-info endpoint unreachable: {e}") from e

        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise _Unauthorized
        if not response.is_success:
            raise ProtocolError(f"User-info endpoint returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError("User-info endpoint returned invalid JSON") from e
        return UserProfile.from_dict(data)


def _callback_params(source: Mapping[str, str] | str) -> Mapping[str, str]:
    if not isinstance(source, str):
        return source
    query = urlsplit(source).query if "?" in source else source.lstrip("?")
    return dict(parse_qsl(query, keep_blank_values=True))
