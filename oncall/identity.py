"""
identity.py — Identity Resolver

Two lookups:

  1. Fuzzy (reconciliation): match key → candidates via MatchIndex
       0 candidates                         → UNKNOWN
       1 candidate                          → RESOLVED
       >1, narrowed to role=resident AND
           status=active leaves exactly 1   → RESOLVED
       otherwise                            → AMBIGUOUS (candidate count kept)

     The narrowing step can pick the wrong person when an inactive resident
     is the one actually on the schedule; that trade-off is accepted.

  2. Exact (import time): alias → e-mail → full name, case-insensitive.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from oncall.models import Resolution, ResolutionStatus, StationAssignment, UserIdentity
from oncall.names import normalize_name

logger = logging.getLogger(__name__)

NARROW_ROLE = "resident"
NARROW_STATUS = "active"


# ---------------------------------------------------------------------------
# Match-key index
# ---------------------------------------------------------------------------

class MatchIndex:
    """match key → candidate identities, built fresh for every run."""

    def __init__(self, users: Iterable[UserIdentity]):
        self._by_key: Dict[str, List[UserIdentity]] = defaultdict(list)
        self.ids = set()
        for user in users:
            self.ids.add(user.id)
            keys = {normalize_name(n) for n in (user.full_name, user.full_name_he) if n}
            for key in keys:
                if key:
                    self._by_key[key].append(user)
        logger.info(f"Built match index: {len(self.ids)} users, {len(self._by_key)} keys")

    def candidates(self, key: str) -> List[UserIdentity]:
        return list(self._by_key.get(key, []))

    def __contains__(self, user_id: str) -> bool:
        return user_id in self.ids


def resolve(key: str, index: MatchIndex) -> Resolution:
    """Classify one match key against the index."""
    matches = index.candidates(key)
    if not matches:
        return Resolution(ResolutionStatus.UNKNOWN)
    if len(matches) == 1:
        return Resolution(ResolutionStatus.RESOLVED, identity=matches[0], candidates=1)

    narrowed = [m for m in matches if m.role == NARROW_ROLE and m.status == NARROW_STATUS]
    if len(narrowed) == 1:
        return Resolution(ResolutionStatus.RESOLVED, identity=narrowed[0], candidates=len(matches))
    return Resolution(ResolutionStatus.AMBIGUOUS, candidates=len(matches))


def resolve_name(display_name: str, index: MatchIndex) -> Resolution:
    return resolve(normalize_name(display_name), index)


# ---------------------------------------------------------------------------
# Exact lookup used while importing
# ---------------------------------------------------------------------------

class ExactNameResolver:
    """
    Case-insensitive exact lookup: alias, then e-mail, then full name (either
    language), then caller-supplied resolutions (raw name → user id).
    First match in each tier wins.
    """

    def __init__(
        self,
        users: Iterable[UserIdentity],
        aliases: Optional[Dict[str, StationAssignment]] = None,
        resolutions: Optional[Dict[str, str]] = None,
    ):
        self.users = list(users)
        self._by_id = {u.id: u for u in self.users}
        self._aliases = {k.strip().lower(): v for k, v in (aliases or {}).items()}
        self._resolutions = {k.strip().lower(): v for k, v in (resolutions or {}).items()}
        self._by_email: Dict[str, UserIdentity] = {}
        self._by_name: Dict[str, UserIdentity] = {}
        for u in self.users:
            if u.email:
                self._by_email.setdefault(u.email.lower(), u)
            for name in (u.full_name, u.full_name_he):
                if name:
                    self._by_name.setdefault(name.lower(), u)

    def lookup(self, raw: str) -> Optional[StationAssignment]:
        key = (raw or "").strip().lower()
        if not key:
            return None
        if key in self._aliases:
            return self._aliases[key]
        user = self._by_email.get(key) or self._by_name.get(key)
        if user is None and key in self._resolutions:
            user = self._by_id.get(self._resolutions[key])
        if user is None:
            return None
        return StationAssignment(occupant_ref=user.id, display_name=user.display_name)

    def user(self, uid: str) -> Optional[UserIdentity]:
        return self._by_id.get(uid)
