"""Opaque verification codes for issued ID cards.

A code is minted once, inside the transaction that creates the card, from a
CSPRNG (not a sequence), bound permanently to that card and retired forever in
the issued-code ledger. Public verification is an exact lookup that reports the
card's *current* effective status.
"""
from __future__ import annotations
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from badge_admin.errors import CodeAlreadyBound, RecordNotFound
from badge_admin.models.employee import Employee
from badge_admin.services.lifecycle import (
    CardSnapshot, CardStore, EXPIRED, LOST, PRINTED, REPLACED, effective_status, utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_CODE_BYTES = 16
MAX_MINT_ATTEMPTS = 5
MIN_CODE_BYTES = 6
MIN_CODE_LENGTH = 8

REASON_NOT_PRINTED = 'not_printed'
REASON_EXPIRED = 'expired'
REASON_LOST = 'lost'
REASON_REPLACED = 'replaced'
REASON_EMPLOYEE_INACTIVE = 'employee_inactive'


@dataclass(frozen=True)
class VerificationResult:
    record: CardSnapshot
    status: str
    subject: Optional[Dict[str, Any]]
    valid: bool
    reason: Optional[str]

    def to_public_dict(self) -> Dict[str, Any]:
        r = self.record
        subject = self.subject or {}
        return {
            'valid': self.valid,
            'reason': self.reason,
            'status': self.status,
            'card': {
                'id': r.id,
                'issue_date': r.issue_date.isoformat() if r.issue_date else None,
                'expiry_date': r.expiry_date.isoformat() if r.expiry_date else None,
                'printed_at': r.printed_at.isoformat() if r.printed_at else None,
            },
            'subject': {
                'name': subject.get('name'),
                'employee_code': subject.get('employee_code'),
                'department': subject.get('department'),
                'photo_url': subject.get('photo_url'),
            },
        }


def _reason_for(status: str, subject: Optional[Dict[str, Any]]) -> Optional[str]:
    if status == EXPIRED:
        return REASON_EXPIRED
    if status == LOST:
        return REASON_LOST
    if status == REPLACED:
        return REASON_REPLACED
    if status != PRINTED:
        return REASON_NOT_PRINTED
    if not subject or subject.get('status') == Employee.STATUS_INACTIVE:
        return REASON_EMPLOYEE_INACTIVE
    return None


class VerificationService:
    def __init__(self, store: CardStore, clock: Callable[[], datetime] = utcnow,
                 code_bytes: int = DEFAULT_CODE_BYTES, code_factory: Optional[Callable[[], str]] = None):
        if code_bytes < MIN_CODE_BYTES:
            raise ValueError(f'VERIFICATION_CODE_BYTES must be at least {MIN_CODE_BYTES}')
        self.store = store
        self.clock = clock
        self.code_factory = code_factory or (lambda: secrets.token_urlsafe(code_bytes))
        # token_urlsafe(n) yields ceil(4n/3) characters
        max_length = max(64, -(-4 * code_bytes // 3))
        self._code_shape = re.compile(rf'^[A-Za-z0-9_-]{{{MIN_CODE_LENGTH},{max_length}}}$')

    def mint(self) -> str:
        for _ in range(MAX_MINT_ATTEMPTS):
            code = self.code_factory()
            if not self.store.code_in_use(code):
                return code
            logger.warning('Verification code collision; minting again')
        raise RuntimeError('Could not mint an unused verification code')

    def issue(self, record_id: int) -> str:
        """Mint a fresh code and bind it to the card. A card is bound at most once."""
        code = self.mint()
        if not self.store.bind_code(record_id, code):
            raise CodeAlreadyBound(f'ID card {record_id} already has a verification code')
        return code

    def verify(self, code: Optional[str]) -> VerificationResult:
        # malformed, unknown and purged codes all look the same to the caller
        if not code or not self._code_shape.match(code):
            raise RecordNotFound('Invalid verification code')
        record = self.store.find_by_code(code)
        if record is None:
            raise RecordNotFound('Invalid verification code')
        status = effective_status(record, self.clock())
        subject = self.store.subject_summary(record.employee_id)
        reason = _reason_for(status, subject)
        return VerificationResult(record, status, subject, reason is None, reason)

__all__ = ['VerificationService', 'VerificationResult']
