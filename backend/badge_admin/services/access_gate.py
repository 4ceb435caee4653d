"""Single authorization choke point.

`AccessGate.authorize` is what enforcement calls before any mutation, and what
the capability endpoints call when the UI asks which affordances to render. Both
go through `GrantSet.allows`, so the two contexts cannot disagree.

`AdvisoryGrants` is the client-side copy: a grant snapshot carried in the JWT /
`/iam/auth/me` payload. It evaluates with the same rule but may be stale; it is
never consulted before applying a mutation.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from badge_admin.constants.permissions import ACTIONS
from badge_admin.services.permission_matrix import GrantSet, PermissionMatrix

logger = logging.getLogger(__name__)

REASON_GRANTED = 'granted'
REASON_NO_ROLE = 'no_role'
REASON_NO_MATRIX = 'no_matrix'
REASON_UNKNOWN_AREA = 'unknown_area'
REASON_NOT_GRANTED = 'not_granted'


@dataclass(frozen=True)
class Decision:
    role_id: Optional[int]
    area: Optional[str]
    action: str
    allowed: bool
    reason: str

    def __bool__(self):
        return self.allowed


@dataclass(frozen=True)
class Authorized(Decision):
    pass


@dataclass(frozen=True)
class Denied(Decision):
    pass


def evaluate(grant_set: Optional[GrantSet], role_id: Optional[int], area: Optional[str], action: str) -> Decision:
    """Decide one (area, action) against a snapshot. Shared by the gate and advisory views."""
    if role_id is None:
        return Denied(role_id, area, action, False, REASON_NO_ROLE)
    if grant_set is None:
        return Denied(role_id, area, action, False, REASON_NO_MATRIX)
    match = grant_set.find_area(area)
    if match is None:
        return Denied(role_id, area, action, False, REASON_UNKNOWN_AREA)
    if not match.grant.allows(action):
        return Denied(role_id, area, action, False, REASON_NOT_GRANTED)
    return Authorized(role_id, area, action, True, REASON_GRANTED)


class AccessGate:
    def __init__(self, matrix: PermissionMatrix):
        self.matrix = matrix

    def authorize(self, role_id: Optional[int], area: Optional[str], action: str) -> Decision:
        grant_set = self.matrix.snapshot(role_id) if role_id is not None else None
        decision = evaluate(grant_set, role_id, area, action)
        if not decision:
            logger.debug('Denied role=%s area=%r action=%s (%s)', role_id, area, action, decision.reason)
        return decision

    def capabilities(self, role_id: Optional[int], areas: Iterable[str], actions: Iterable[str] = ACTIONS) -> Dict[str, Dict[str, bool]]:
        """Affordance map {area: {action: bool}} evaluated on one snapshot."""
        grant_set = self.matrix.snapshot(role_id) if role_id is not None else None
        actions = tuple(actions)
        return {
            area: {a: evaluate(grant_set, role_id, area, a).allowed for a in actions}
            for area in areas
        }


class AdvisoryGrants:
    """Advisory, possibly stale view over a serialized grant snapshot."""

    def __init__(self, payload: Optional[dict], role_id: Optional[int] = None):
        self.grant_set = GrantSet.from_payload(payload, role_id) if payload else None
        self.role_id = role_id if role_id is not None else (self.grant_set.role_id if self.grant_set else None)

    @property
    def version(self) -> int:
        return self.grant_set.version if self.grant_set else 0

    def can(self, area: str, action: str) -> bool:
        return evaluate(self.grant_set, self.role_id, area, action).allowed

    def is_stale(self, current_version: Optional[int]) -> bool:
        return (current_version or 0) != self.version

    def affordances(self, pairs: Iterable[Tuple[str, str]]) -> Dict[Tuple[str, str], bool]:
        return {(area, action): self.can(area, action) for area, action in pairs}

__all__ = ['AccessGate', 'AdvisoryGrants', 'Decision', 'Authorized', 'Denied', 'evaluate']
