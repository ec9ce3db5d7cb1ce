"""Caller identity and tenant resolution.

A caller token resolves to a user id through an ``IdentityProvider``. The
user's current team comes from ``user_team_preferences``, falling back to
the first ``team_memberships`` row. The outcome is always an explicit
``TenantResolution``: scoped to a team, or unscoped with a reason.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import jwt

from agentcrm.errors import AuthError, RecordStoreError
from agentcrm.store.record_store import Query, RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantResolution:
    team_id: str | None
    reason: str = ""

    @classmethod
    def scoped(cls, team_id: str, reason: str = "") -> "TenantResolution":
        return cls(team_id=team_id, reason=reason)

    @classmethod
    def unscoped(cls, reason: str) -> "TenantResolution":
        return cls(team_id=None, reason=reason)

    @property
    def is_scoped(self) -> bool:
        return self.team_id is not None


@dataclass(frozen=True)
class CallerContext:
    """Who is calling. ``team_id`` is set only when the caller names a team explicitly."""

    user_id: str | None = None
    team_id: str | None = None

    @classmethod
    def anonymous(cls) -> "CallerContext":
        return cls()


class IdentityProvider(Protocol):
    def resolve_user(self, token: str | None) -> str | None:
        ...


class JWTIdentityProvider:
    """Verifies HS256 bearer tokens and returns the ``sub`` claim."""

    def __init__(self, secret: str | None, *, audience: str | None = None):
        self.secret = secret
        self.audience = audience

    def resolve_user(self, token: str | None) -> str | None:
        if not token:
            return None
        if not self.secret:
            raise AuthError("Token verification is not configured (set ACRM_JWT_SECRET)")
        options = {"verify_aud": self.audience is not None}
        try:
            data = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience,
                options=options,
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthError(f"Invalid token: {e}") from e
        user_id = data.get("sub")
        if not user_id:
            raise AuthError("Token has no subject")
        return str(user_id)


class TenantResolver:
    """Reads the caller's current team. Never writes the preference."""

    def __init__(self, store: RecordStore):
        self.store = store

    def resolve(self, caller: CallerContext) -> TenantResolution:
        if caller.team_id:
            return TenantResolution.scoped(caller.team_id, "explicit")
        if not caller.user_id:
            return TenantResolution.unscoped("anonymous caller")

        try:
            prefs = self.store.select(
                Query("user_team_preferences", limit=1).where("user_id", "eq", caller.user_id)
            )
            if prefs and prefs[0].get("current_team_id"):
                return TenantResolution.scoped(prefs[0]["current_team_id"], "preference")

            memberships = self.store.select(
                Query("team_memberships", limit=1)
                .where("user_id", "eq", caller.user_id)
                .order_by("created_at")
            )
        except RecordStoreError as e:
            logger.warning("Tenant lookup failed for user %s: %s", caller.user_id, e)
            return TenantResolution.unscoped(f"tenant lookup failed: {e}")

        if memberships:
            return TenantResolution.scoped(memberships[0]["team_id"], "membership")
        return TenantResolution.unscoped("user has no team")
