"""ID card issuance lifecycle.

    created --approve--> ready_to_print --edit--> printed --edit--> lost
                                                          --edit--> replaced
    created / ready_to_print / printed --(system, time-driven)--> expired

Every actor-requested transition is: edge lookup, then access gate, then a
compare-and-swap on the stored status. A lost swap means the record moved on and
is reported as an invalid transition, never as a silent overwrite.

Expiry is computed on read (`effective_status`) and only written
(`materialize_expiry`) right before a transition is evaluated.
"""
from __future__ import annotations
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from badge_admin.constants.permissions import AREA_GENERATE_ID
from badge_admin.errors import DomainError, InvalidTransition, PermissionDenied, RecordNotFound, TransitionDenied
from badge_admin.models.id_card import IdCard
from badge_admin.services.access_gate import AccessGate
from badge_admin.services.audit import (
    AuditEvent, AuditSink, OUTCOME_DENIED, OUTCOME_INVALID, OUTCOME_SUCCESS, record_safely,
)
from badge_admin.utils.fsm import TransitionValidator

logger = logging.getLogger(__name__)

CREATED = IdCard.STATUS_CREATED
READY_TO_PRINT = IdCard.STATUS_READY_TO_PRINT
PRINTED = IdCard.STATUS_PRINTED
LOST = IdCard.STATUS_LOST
REPLACED = IdCard.STATUS_REPLACED
EXPIRED = IdCard.STATUS_EXPIRED
TERMINAL = frozenset(IdCard.TERMINAL_STATUSES)

CARD_FSM = TransitionValidator({
    CREATED: {READY_TO_PRINT: 'approve', EXPIRED: None},
    READY_TO_PRINT: {PRINTED: 'edit', EXPIRED: None},
    # "lost" has its own UI affordance but is authorized by the edit capability
    PRINTED: {LOST: 'edit', REPLACED: 'edit', EXPIRED: None},
    LOST: {},
    REPLACED: {},
    EXPIRED: {},
})

AUDIT_ACTIONS = {
    READY_TO_PRINT: 'IDCARD.READY',
    PRINTED: 'IDCARD.PRINT',
    LOST: 'IDCARD.LOST',
    REPLACED: 'IDCARD.REPLACE',
    EXPIRED: 'IDCARD.EXPIRE',
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    user_id: int
    role_id: Optional[int]


@dataclass(frozen=True)
class CardSnapshot:
    id: int
    employee_id: int
    template_id: int
    verification_code: Optional[str]
    status: str
    issue_date: Optional[date]
    expiry_date: Optional[date]
    created_by_id: int
    printed_by_id: Optional[int] = None
    printed_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class StatusStamp:
    at: datetime
    actor_user_id: Optional[int] = None
    printed_by_id: Optional[int] = None


@dataclass(frozen=True)
class CardView:
    record: CardSnapshot
    status: str

    @property
    def stored_status(self) -> str:
        return self.record.status

    def to_dict(self) -> Dict[str, Any]:
        r = self.record
        return {
            'id': r.id,
            'employee_id': r.employee_id,
            'template_id': r.template_id,
            'verification_code': r.verification_code,
            'status': self.status,
            'issue_date': r.issue_date.isoformat() if r.issue_date else None,
            'expiry_date': r.expiry_date.isoformat() if r.expiry_date else None,
            'created_by_id': r.created_by_id,
            'printed_by_id': r.printed_by_id,
            'printed_at': _iso(r.printed_at),
            'status_changed_at': _iso(r.status_changed_at),
        }


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat().replace('+00:00', 'Z')


class CardStore(Protocol):
    def transaction(self) -> AbstractContextManager: ...
    def load_record(self, record_id: int) -> Optional[CardSnapshot]: ...
    def find_by_code(self, code: str) -> Optional[CardSnapshot]: ...
    def insert_record(self, *, employee_id: int, template_id: int, issue_date: Optional[date],
                      expiry_date: Optional[date], created_by_id: int, created_at: datetime) -> int: ...
    def bind_code(self, record_id: int, code: str) -> bool: ...
    def code_in_use(self, code: str) -> bool: ...
    def swap_status(self, record_id: int, expected: str, new: str, stamp: StatusStamp) -> bool: ...
    def delete_record(self, record_id: int) -> bool: ...
    def subject_exists(self, employee_id: int) -> bool: ...
    def template_exists(self, template_id: int) -> bool: ...
    def subject_summary(self, employee_id: int) -> Optional[Dict[str, Any]]: ...


def is_past_expiry(expiry_date: Optional[date], now: datetime) -> bool:
    # the card is valid through its expiry date
    return expiry_date is not None and expiry_date < now.date()


def effective_status(record, now: datetime) -> str:
    """Status as it must be presented at `now`; pure, never writes."""
    if record.status not in TERMINAL and is_past_expiry(record.expiry_date, now):
        return EXPIRED
    return record.status


class CredentialLifecycle:
    def __init__(self, gate: AccessGate, store: CardStore, verifier, audit: Optional[AuditSink] = None,
                 clock: Callable[[], datetime] = utcnow, area: str = AREA_GENERATE_ID):
        self.gate = gate
        self.store = store
        self.verifier = verifier
        self.audit = audit
        self.clock = clock
        self.area = area

    # ---- reads ----
    def read(self, record_id: int) -> CardView:
        record = self._load(record_id)
        return CardView(record, effective_status(record, self.clock()))

    def view_of(self, record: CardSnapshot) -> CardView:
        return CardView(record, effective_status(record, self.clock()))

    def _load(self, record_id: int) -> CardSnapshot:
        record = self.store.load_record(record_id)
        if record is None:
            raise RecordNotFound('ID card not found')
        return record

    # ---- expiry ----
    def materialize_expiry(self, record_id: int) -> CardView:
        """Persist `expired` for an overdue non-terminal card. Idempotent."""
        record = self._materialize(self._load(record_id))
        return CardView(record, effective_status(record, self.clock()))

    def _materialize(self, record: CardSnapshot) -> CardSnapshot:
        for _ in range(len(CARD_FSM.states)):
            now = self.clock()
            if effective_status(record, now) != EXPIRED or record.status == EXPIRED:
                return record
            if self.store.swap_status(record.id, record.status, EXPIRED, StatusStamp(at=now)):
                logger.info('ID card %s expired (was %s)', record.id, record.status)
                self._audit(None, 'IDCARD.EXPIRE', record.id, OUTCOME_SUCCESS, {'from': record.status, 'to': EXPIRED})
            # re-read whether we won or another writer moved it first
            record = self._load(record.id)
        return record

    # ---- writes ----
    def create(self, actor: Actor, employee_id: int, template_id: int,
               issue_date: Optional[date] = None, expiry_date: Optional[date] = None) -> CardView:
        self._require(actor, 'generate', 'IDCARD.CREATE', None, PermissionDenied)
        now = self.clock()
        issue_date = self._validate_new_card(employee_id, template_id, issue_date, expiry_date, now)
        with self.store.transaction():
            record_id = self.store.insert_record(
                employee_id=employee_id,
                template_id=template_id,
                issue_date=issue_date,
                expiry_date=expiry_date,
                created_by_id=actor.user_id,
                created_at=now,
            )
            self.verifier.issue(record_id)
        self._audit(actor, 'IDCARD.CREATE', record_id, OUTCOME_SUCCESS,
                    {'employee_id': employee_id, 'template_id': template_id, 'status': CREATED})
        return self.read(record_id)

    def request_transition(self, record_id: int, target: str, actor: Actor) -> CardView:
        record = self._materialize(self._load(record_id))
        audit_action = AUDIT_ACTIONS.get(target, 'IDCARD.TRANSITION')
        # an overdue card that could not be written as expired still has no outbound edges
        current = effective_status(record, self.clock())
        try:
            edge = CARD_FSM.assert_actor_can_request(current, target)
        except InvalidTransition:
            self._audit(actor, audit_action, record.id, OUTCOME_INVALID, {'from': current, 'to': target})
            raise
        self._require(actor, edge.required_action, audit_action, record.id, TransitionDenied)
        now = self.clock()
        stamp = StatusStamp(at=now, actor_user_id=actor.user_id,
                            printed_by_id=actor.user_id if target == PRINTED else None)
        if not self.store.swap_status(record.id, record.status, target, stamp):
            self._audit(actor, audit_action, record.id, OUTCOME_INVALID,
                        {'from': record.status, 'to': target, 'race': True})
            raise InvalidTransition(record.status, target,
                                    'ID card status changed concurrently; re-fetch the record')
        self._audit(actor, audit_action, record.id, OUTCOME_SUCCESS, {'from': record.status, 'to': target})
        return self.read(record.id)

    def reissue(self, record_id: int, actor: Actor, expiry_date: Optional[date] = None,
                issue_date: Optional[date] = None) -> Tuple[CardView, CardView]:
        """Replace a printed card and generate its successor for the same employee."""
        self._require(actor, 'generate', 'IDCARD.CREATE', record_id, PermissionDenied)
        current = self._load(record_id)
        expiry_date = expiry_date or current.expiry_date
        # the successor must be creatable before the old card is retired for good
        issue_date = self._validate_new_card(current.employee_id, current.template_id,
                                             issue_date, expiry_date, self.clock())
        old = self.request_transition(record_id, REPLACED, actor)
        new = self.create(actor, old.record.employee_id, old.record.template_id,
                          issue_date=issue_date, expiry_date=expiry_date)
        return old, new

    def delete(self, record_id: int, actor: Actor) -> None:
        """Hard removal; outside the state machine. The issued code stays retired."""
        self._require(actor, 'delete', 'IDCARD.DELETE', record_id, PermissionDenied)
        record = self._load(record_id)
        if not self.store.delete_record(record.id):
            raise RecordNotFound('ID card not found')
        self._audit(actor, 'IDCARD.DELETE', record.id, OUTCOME_SUCCESS, {'status': record.status})

    # ---- helpers ----
    def _validate_new_card(self, employee_id: int, template_id: int, issue_date: Optional[date],
                           expiry_date: Optional[date], now: datetime) -> date:
        """Reject what `create` would reject; returns the issue date to use."""
        if not self.store.subject_exists(employee_id):
            raise DomainError('employee_id invalid')
        if not self.store.template_exists(template_id):
            raise DomainError('template_id invalid')
        issue_date = issue_date or now.date()
        if expiry_date is not None and expiry_date < issue_date:
            raise DomainError('expiry_date must not precede issue_date')
        return issue_date

    def _require(self, actor: Actor, action: str, audit_action: str, record_id, error_cls):
        decision = self.gate.authorize(actor.role_id, self.area, action)
        if not decision:
            self._audit(actor, audit_action, record_id, OUTCOME_DENIED, {'required': action, 'reason': decision.reason})
            raise error_cls(f'Missing {action} permission on {self.area}', decision)
        return decision

    def _audit(self, actor: Optional[Actor], action: str, record_id, outcome: str, meta: Dict[str, Any]):
        record_safely(self.audit, AuditEvent(
            actor_user_id=actor.user_id if actor else None,
            actor_role_id=actor.role_id if actor else None,
            action=action,
            outcome=outcome,
            area=self.area,
            entity='IdCard',
            entity_id=str(record_id) if record_id is not None else None,
            timestamp=self.clock(),
            meta=meta,
        ))

__all__ = [
    'CARD_FSM', 'Actor', 'CardSnapshot', 'CardView', 'CardStore', 'StatusStamp', 'CredentialLifecycle',
    'effective_status', 'is_past_expiry', 'utcnow',
]
