"""Tests for caller token verification and tenant resolution."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest

from agentcrm.errors import AuthError, RecordStoreError
from agentcrm.store.record_store import Query
from agentcrm.tenancy import CallerContext, JWTIdentityProvider, TenantResolver

SECRET = "test-secret-with-at-least-32-bytes!!"


def make_token(secret=SECRET, **claims):
    payload = {"sub": "user-a", "aud": "authenticated", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, secret, algorithm="HS256")


class TestJWTIdentityProvider:
    def setup_method(self):
        self.identity = JWTIdentityProvider(SECRET, audience="authenticated")

    def test_valid_token(self):
        assert self.identity.resolve_user(make_token()) == "user-a"

    @pytest.mark.parametrize("token", [None, ""])
    def test_no_token_is_anonymous(self, token):
        assert self.identity.resolve_user(token) is None

    def test_expired_token(self):
        token = make_token(exp=datetime.now(timezone.utc) - timedelta(minutes=5))
        with pytest.raises(AuthError, match="expired"):
            self.identity.resolve_user(token)

    def test_wrong_secret(self):
        with pytest.raises(AuthError, match="Invalid token"):
            self.identity.resolve_user(make_token(secret="another-secret-with-32-bytes-or-more"))

    def test_wrong_audience(self):
        with pytest.raises(AuthError):
            self.identity.resolve_user(make_token(aud="someone-else"))

    def test_missing_subject(self):
        with pytest.raises(AuthError, match="no subject"):
            self.identity.resolve_user(make_token(sub=None))

    def test_garbage_token(self):
        with pytest.raises(AuthError):
            self.identity.resolve_user("not-a-jwt")

    def test_unconfigured_secret_rejects_tokens(self):
        with pytest.raises(AuthError, match="not configured"):
            JWTIdentityProvider(None).resolve_user(make_token())

    def test_audience_check_can_be_disabled(self):
        identity = JWTIdentityProvider(SECRET, audience=None)
        assert identity.resolve_user(make_token(aud=None)) == "user-a"


class TestTenantResolver:
    def test_explicit_team_wins(self, store):
        resolution = TenantResolver(store).resolve(CallerContext(user_id="user-a", team_id="team-x"))

        assert resolution.team_id == "team-x"
        assert resolution.reason == "explicit"

    def test_anonymous_caller(self, store):
        resolution = TenantResolver(store).resolve(CallerContext.anonymous())

        assert not resolution.is_scoped
        assert resolution.reason == "anonymous caller"

    def test_membership(self, store):
        store.insert("team_memberships", {"team_id": "team-a", "user_id": "user-a"})

        resolution = TenantResolver(store).resolve(CallerContext(user_id="user-a"))

        assert resolution.team_id == "team-a"
        assert resolution.reason == "membership"

    def test_preference_wins_over_membership(self, store):
        store.insert("team_memberships", {"team_id": "team-a", "user_id": "user-a"})
        store.insert("user_team_preferences", {"user_id": "user-a", "current_team_id": "team-b"})

        resolution = TenantResolver(store).resolve(CallerContext(user_id="user-a"))

        assert resolution.team_id == "team-b"
        assert resolution.reason == "preference"

    def test_user_without_team(self, store):
        resolution = TenantResolver(store).resolve(CallerContext(user_id="nobody"))

        assert resolution.team_id is None
        assert resolution.reason == "user has no team"

    def test_lookup_failure_is_unscoped(self, store):
        resolver = TenantResolver(store)
        with patch.object(store, "select", side_effect=RecordStoreError("locked")):
            resolution = resolver.resolve(CallerContext(user_id="user-a"))

        assert not resolution.is_scoped
        assert "locked" in resolution.reason

    def test_resolution_never_writes_preference(self, store):
        store.insert("team_memberships", {"team_id": "team-a", "user_id": "user-a"})

        TenantResolver(store).resolve(CallerContext(user_id="user-a"))

        assert store.select(Query("user_team_preferences")) == []
