"""Value objects exchanged with the identity provider."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from .errors import ProtocolError


class SessionState(StrEnum):
    """Where a client sits in the authorization-code flow."""

    ANONYMOUS = "anonymous"
    AUTHORIZATION_PENDING = "authorization_pending"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True, slots=True)
class PKCEPair:
    """A code verifier and the challenge derived from it."""

    code_verifier: str
    code_challenge: str


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """Successful token endpoint response.

    Instances are never mutated; a refresh produces a new one that replaces
    the old one wholesale.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> TokenResponse:
        """Parse a decoded JSON body.

        Raises:
            ProtocolError: If the body is not an object or lacks a string
                ``access_token``.
        """
        if not isinstance(data, Mapping):
            raise ProtocolError("Token response is not a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProtocolError("Token response is missing access_token")

        expires_in = data.get("expires_in")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            expires_in = None

        return cls(
            access_token=access_token,
            token_type=_str_or_none(data.get("token_type")) or "Bearer",
            expires_in=expires_in,
            refresh_token=_str_or_none(data.get("refresh_token")),
            id_token=_str_or_none(data.get("id_token")),
            scope=_str_or_none(data.get("scope")),
        )


_PROFILE_FIELDS = (
    "email",
    "email_verified",
    "name",
    "given_name",
    "family_name",
    "preferred_username",
)


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Profile returned by the user-info endpoint.

    Standard OIDC fields are promoted to attributes; anything else the
    provider sends is kept read-only in ``extra``.
    """

    sub: str
    email: str | None = None
    email_verified: bool | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    preferred_username: str | None = None
    permissions: Mapping[str, int] | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Any) -> UserProfile:
        """Parse a decoded JSON body.

        Raises:
            ProtocolError: If the body is not an object or lacks ``sub``.
        """
        if not isinstance(data, Mapping):
            raise ProtocolError("User-info response is not a JSON object")

        sub = data.get("sub")
        if not isinstance(sub, str) or not sub:
            raise ProtocolError("User-info response is missing sub")

        known = {"sub", "permissions", *_PROFILE_FIELDS}
        permissions = data.get("permissions")

        return cls(
            sub=sub,
            email=_str_or_none(data.get("email")),
            email_verified=(
                data["email_verified"]
                if isinstance(data.get("email_verified"), bool)
                else None
            ),
            name=_str_or_none(data.get("name")),
            given_name=_str_or_none(data.get("given_name")),
            family_name=_str_or_none(data.get("family_name")),
            preferred_username=_str_or_none(data.get("preferred_username")),
            permissions=(
                MappingProxyType(dict(permissions))
                if isinstance(permissions, Mapping)
                else None
            ),
            extra=MappingProxyType(
                {k: v for k, v in data.items() if k not in known}
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict; unset optional fields are omitted."""
        data: dict[str, Any] = dict(self.extra)
        data["sub"] = self.sub
        for name in _PROFILE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.permissions is not None:
            data["permissions"] = dict(self.permissions)
        return data


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
