"""Permission and scope checks over verified claims.

Authly tokens carry two authorization claims:

- ``permissions``: mapping of resource name to an integer bitmask level,
  e.g. ``{"documents": 3}`` (read=1 | write=2).
- ``scope``: space-separated OAuth scopes.

Extraction is fail-closed: anything malformed is dropped, which can only
narrow what a token grants.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .errors import Forbidden
from .protocols import Claims, PermissionLevels


@dataclass(frozen=True, slots=True)
class ClaimsMapping:
    """Which claims hold permissions and scopes."""

    permissions_claim: str = "permissions"
    scope_claim: str = "scope"


class ClaimAccess:
    """Reads permissions and scopes out of claims.

    Examples:
        >>> access = ClaimAccess(ClaimsMapping())
        >>> access.permissions({"permissions": {"documents": 3, "admin": "x"}})
        {'documents': 3}
        >>> sorted(access.scopes({"scope": "openid profile"}))
        ['openid', 'profile']
    """

    def __init__(self, mapping: ClaimsMapping | None = None) -> None:
        self._m = mapping or ClaimsMapping()

    def permissions(self, claims: Claims) -> dict[str, int]:
        raw = claims.get(self._m.permissions_claim)
        if not isinstance(raw, Mapping):
            return {}
        # bool is an int subclass; a True level is not a permission
        return {
            resource: level
            for resource, level in raw.items()
            if isinstance(resource, str)
            and isinstance(level, int)
            and not isinstance(level, bool)
        }

    def scopes(self, claims: Claims) -> frozenset[str]:
        raw = claims.get(self._m.scope_claim)
        if isinstance(raw, str):
            return frozenset(raw.split())
        if isinstance(raw, (list, tuple, set, frozenset)):
            return frozenset(item for item in raw if isinstance(item, str))
        return frozenset()


class PermissionAuthorizer:
    """Enforces per-route permission levels and scopes.

    A requirement ``{resource: level}`` is satisfied when the token grants
    ``resource`` with every bit of ``level`` set. With
    ``require_all_permissions=False`` one satisfied resource is enough.
    Required scopes are always all-of. Empty requirements allow access.
    """

    def __init__(self, claims: ClaimAccess | None = None) -> None:
        self._claims = claims or ClaimAccess()

    @staticmethod
    def _grants(granted: Mapping[str, int], resource: str, level: int) -> bool:
        held = granted.get(resource)
        return held is not None and (held & level) == level

    def authorize(
        self,
        claims: Claims,
        *,
        permissions: PermissionLevels,
        scopes: frozenset[str],
        require_all_permissions: bool,
    ) -> None:
        if scopes and not scopes.issubset(self._claims.scopes(claims)):
            raise Forbidden("Missing required scope")

        if not permissions:
            return

        granted = self._claims.permissions(claims)
        checks = (self._grants(granted, r, lvl) for r, lvl in permissions.items())
        satisfied = all(checks) if require_all_permissions else any(checks)
        if not satisfied:
            raise Forbidden("Insufficient permissions")
