"""
Tests for permission-level and scope authorization.

Permission levels are bitmasks: READ=1, WRITE=2, so 3 grants both.
"""

import pytest

import authly as m

READ = 1
WRITE = 2


def _authorize(claims, *, permissions=None, scopes=(), require_all_permissions=True):
    m.PermissionAuthorizer().authorize(
        claims,
        permissions=permissions or {},
        scopes=frozenset(scopes),
        require_all_permissions=require_all_permissions,
    )


class TestPermissionExtraction:
    """Test permission extraction from claims."""

    def test_claim_access_permissions(self):
        ca = m.ClaimAccess(m.ClaimsMapping(permissions_claim="permissions"))
        claims = {"permissions": {"documents": 3, "billing": 1}}
        assert ca.permissions(claims) == {"documents": 3, "billing": 1}

    def test_claim_access_drops_malformed_levels(self):
        """Non-integer and boolean levels never grant anything."""
        ca = m.ClaimAccess()
        claims = {"permissions": {"documents": "3", "admin": True, "reports": 1.0, "ok": 2}}
        assert ca.permissions(claims) == {"ok": 2}

    def test_claim_access_permissions_not_a_mapping(self):
        ca = m.ClaimAccess()
        assert ca.permissions({"permissions": ["read:documents"]}) == {}
        assert ca.permissions({}) == {}

    def test_custom_claim_names(self):
        ca = m.ClaimAccess(m.ClaimsMapping(permissions_claim="perm", scope_claim="scp"))
        claims = {"perm": {"a": 1}, "scp": ["x", "y", 3]}
        assert ca.permissions(claims) == {"a": 1}
        assert ca.scopes(claims) == frozenset({"x", "y"})

    def test_scopes_from_string(self):
        assert m.ClaimAccess().scopes({"scope": "openid  profile"}) == frozenset(
            {"openid", "profile"}
        )


class TestPermissionAuthorization:
    """Test bitmask permission checks."""

    def test_all_bits_required(self):
        claims = {"permissions": {"documents": READ}}

        _authorize(claims, permissions={"documents": READ})
        with pytest.raises(m.Forbidden, match="Insufficient permissions"):
            _authorize(claims, permissions={"documents": READ | WRITE})

    def test_superset_level_grants(self):
        _authorize({"permissions": {"documents": READ | WRITE}}, permissions={"documents": WRITE})

    def test_missing_resource_denied(self):
        with pytest.raises(m.Forbidden):
            _authorize({"permissions": {"billing": 3}}, permissions={"documents": READ})

    def test_all_required_denied(self):
        claims = {"permissions": {"documents": READ}}
        with pytest.raises(m.Forbidden):
            _authorize(claims, permissions={"documents": READ, "billing": READ})

    def test_any_required_allowed(self):
        claims = {"permissions": {"documents": READ}}
        _authorize(
            claims,
            permissions={"documents": READ, "billing": READ},
            require_all_permissions=False,
        )

    def test_any_required_denied(self):
        claims = {"permissions": {"documents": READ}}
        with pytest.raises(m.Forbidden):
            _authorize(
                claims,
                permissions={"documents": WRITE, "billing": READ},
                require_all_permissions=False,
            )

    def test_empty_requirements_allow(self):
        _authorize({})


class TestScopeAuthorization:
    def test_scopes_all_required(self):
        claims = {"scope": "openid profile"}

        _authorize(claims, scopes=["openid"])
        with pytest.raises(m.Forbidden, match="Missing required scope"):
            _authorize(claims, scopes=["openid", "email"])

    def test_scope_failure_wins_over_good_permissions(self):
        claims = {"scope": "openid", "permissions": {"documents": 3}}
        with pytest.raises(m.Forbidden):
            _authorize(claims, permissions={"documents": READ}, scopes=["admin"])
