"""Audit sink boundary.

Every state change of a gated operation is reported here. Delivery is
fire-and-forget: `record_safely` logs and swallows any sink failure so the audited
business operation succeeds or fails on its own merits.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from badge_admin.models.audit import AuditLog

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = 'success'
OUTCOME_DENIED = 'denied'
OUTCOME_INVALID = 'invalid_transition'


@dataclass(frozen=True)
class AuditEvent:
    actor_user_id: Optional[int]
    action: str
    outcome: str = OUTCOME_SUCCESS
    actor_role_id: Optional[int] = None
    area: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    meta: Dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class SqlAuditSink:
    """Writes audit_logs rows. Callers record only after their own unit of work has committed."""

    def __init__(self, session_getter):
        self._session_getter = session_getter

    def record(self, event: AuditEvent) -> None:
        session = self._session_getter()
        try:
            session.add(AuditLog(
                actor_user_id=event.actor_user_id,
                actor_role_id=event.actor_role_id,
                action=event.action,
                area=event.area,
                entity=event.entity,
                entity_id=str(event.entity_id) if event.entity_id is not None else None,
                outcome=event.outcome,
                meta=dict(event.meta or {}),
                created_at=event.timestamp,
            ))
            session.commit()
        except Exception:
            session.rollback()
            raise


class MemoryAuditSink:
    """Keeps events in a list."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)


def record_safely(sink: Optional[AuditSink], event: AuditEvent) -> bool:
    if sink is None:
        return False
    try:
        sink.record(event)
        return True
    except Exception:
        logger.exception('Audit write failed for %s (%s %s)', event.action, event.entity, event.entity_id)
        return False

__all__ = [
    'AuditEvent', 'AuditSink', 'SqlAuditSink', 'MemoryAuditSink', 'record_safely',
    'OUTCOME_SUCCESS', 'OUTCOME_DENIED', 'OUTCOME_INVALID',
]
