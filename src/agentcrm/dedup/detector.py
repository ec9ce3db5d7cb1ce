"""Duplicate detection for contact and deal create candidates.

Contact matching runs three strategies in order and keeps the first match
recorded for any existing id:

1. email, trimmed and lower-cased                      -> 1.0
2. phone, digits only, at least 10 digits              -> 0.9
3. first + last name (case-insensitive) with agreeing  -> 0.7
   account affiliation (both empty, or the same id)

Deals are matched on name only, optionally narrowed to the candidate's
account, and scored 0.8 / 0.95 with a +0.05 bonus for the same stage.

Each strategy swallows store errors and contributes no matches, so a
failing lookup never fails the whole detection.
"""

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from agentcrm.models import DeduplicationResult, DuplicateMatch, SuggestedAction
from agentcrm.store.record_store import Query, RecordStore

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10

EMAIL_SIMILARITY = 1.0
PHONE_SIMILARITY = 0.9
NAME_SIMILARITY = 0.7

DEAL_NAME_SIMILARITY = 0.8
DEAL_ACCOUNT_SIMILARITY = 0.95
DEAL_STAGE_BONUS = 0.05


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def normalize_phone(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def normalize_name(value: Any) -> str:
    return str(value or "").strip().lower()


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _scoped(query: Query, candidate: Mapping[str, Any]) -> Query:
    """Search the candidate's team only; a candidate without one sees unscoped rows."""
    team_id = candidate.get("team_id")
    if team_id:
        return query.where("team_id", "eq", team_id)
    return query.where("team_id", "is_null")


def _contact_result(matches: list[DuplicateMatch]) -> DeduplicationResult:
    if not matches:
        return DeduplicationResult(is_duplicate=False)
    top = matches[0]
    if top.similarity >= 0.9:
        action = SuggestedAction.MERGE
        message = (
            f"Strong duplicate detected: {top.match_reason}. "
            "Consider merging or updating existing contact."
        )
    elif top.similarity >= 0.7:
        action = SuggestedAction.UPDATE
        message = f"Possible duplicate detected: {top.match_reason}. Please review before creating."
    else:
        action = SuggestedAction.CREATE
        message = f"Potential duplicate detected: {top.match_reason}. Please verify before creating."
    return DeduplicationResult(is_duplicate=True, matches=matches, suggested_action=action, message=message)


def _deal_result(matches: list[DuplicateMatch]) -> DeduplicationResult:
    if not matches:
        return DeduplicationResult(is_duplicate=False)
    top = matches[0]
    if top.similarity >= 0.9:
        action = SuggestedAction.MERGE
        message = (
            f"Strong duplicate detected: {top.match_reason}. "
            "Consider merging or updating existing deal."
        )
    elif top.similarity >= 0.8:
        action = SuggestedAction.UPDATE
        message = f"Possible duplicate detected: {top.match_reason}. Please review before creating."
    else:
        action = SuggestedAction.CREATE
        message = f"Potential duplicate detected: {top.match_reason}. Please verify before creating."
    return DeduplicationResult(is_duplicate=True, matches=matches, suggested_action=action, message=message)


class DuplicateDetector:
    """Read-only duplicate search against a record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _safe(
        self, strategy: str, fn: Callable[[], list[DuplicateMatch]]
    ) -> list[DuplicateMatch]:
        try:
            return fn()
        except Exception as e:
            logger.warning("Duplicate check '%s' failed, treating as no matches: %s", strategy, e)
            return []

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    def _email_matches(self, candidate: Mapping[str, Any]) -> list[DuplicateMatch]:
        email = normalize_email(candidate.get("email"))
        if not email:
            return []
        rows = self.store.select(_scoped(Query("contacts").where("email", "not_null"), candidate))
        return [
            DuplicateMatch(id=row["id"], similarity=EMAIL_SIMILARITY, match_reason="Exact email match", data=row)
            for row in rows
            if normalize_email(row.get("email")) == email
        ]

    def _phone_matches(self, candidate: Mapping[str, Any]) -> list[DuplicateMatch]:
        phone = normalize_phone(candidate.get("phone"))
        if len(phone) < MIN_PHONE_DIGITS:
            return []
        rows = self.store.select(_scoped(Query("contacts").where("phone", "not_null"), candidate))
        return [
            DuplicateMatch(id=row["id"], similarity=PHONE_SIMILARITY, match_reason="Exact phone match", data=row)
            for row in rows
            if normalize_phone(row.get("phone")) == phone
        ]

    def _name_matches(self, candidate: Mapping[str, Any]) -> list[DuplicateMatch]:
        first = normalize_name(candidate.get("first_name"))
        last = normalize_name(candidate.get("last_name"))
        if not first or not last:
            return []
        query = (
            Query("contacts")
            .where("first_name", "ieq", first)
            .where("last_name", "ieq", last)
        )
        rows = self.store.select(_scoped(query, candidate))

        account_id = candidate.get("account_id")
        matches = []
        for row in rows:
            existing_account = row.get("account_id")
            same_account = (
                (_blank(account_id) and _blank(existing_account)) or account_id == existing_account
            )
            if not same_account:
                continue
            matches.append(
                DuplicateMatch(
                    id=row["id"],
                    similarity=NAME_SIMILARITY,
                    match_reason="Name and account match",
                    data=row,
                )
            )
        return matches

    def detect_contact_duplicates(self, candidate: Mapping[str, Any]) -> DeduplicationResult:
        """Score existing contacts against a create candidate."""
        seen: set[str] = set()
        matches: list[DuplicateMatch] = []
        strategies = (
            ("email", self._email_matches),
            ("phone", self._phone_matches),
            ("name", self._name_matches),
        )
        for name, strategy in strategies:
            for match in self._safe(name, lambda: strategy(candidate)):
                if match.id in seen:
                    continue
                seen.add(match.id)
                matches.append(match)

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return _contact_result(matches)

    # ------------------------------------------------------------------
    # Deals
    # ------------------------------------------------------------------

    def _deal_matches(self, candidate: Mapping[str, Any]) -> list[DuplicateMatch]:
        name = normalize_name(candidate.get("name"))
        if not name:
            return []
        account_id = candidate.get("account_id")
        stage = candidate.get("stage")

        query = Query("deals").where("name", "ieq", name)
        if account_id:
            query.where("account_id", "eq", account_id)
        rows = self.store.select(_scoped(query, candidate))

        matches = []
        for row in rows:
            if normalize_name(row.get("name")) != name:
                continue
            similarity = DEAL_NAME_SIMILARITY
            reason = "Exact name match"
            if account_id and row.get("account_id") == account_id:
                similarity = DEAL_ACCOUNT_SIMILARITY
                reason = "Exact name and account match"
            if stage and row.get("stage") == stage:
                similarity = min(1.0, similarity + DEAL_STAGE_BONUS)
                reason += " with same stage"
            matches.append(
                DuplicateMatch(id=row["id"], similarity=round(similarity, 4), match_reason=reason, data=row)
            )
        return matches

    def detect_deal_duplicates(self, candidate: Mapping[str, Any]) -> DeduplicationResult:
        """Score existing deals against a create candidate."""
        matches = self._safe("deal_name", lambda: self._deal_matches(candidate))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return _deal_result(matches)
