"""Request body field parsing for ID card endpoints.

Each helper returns the parsed value or raises DomainError, which the unified
error handler renders as a 400 `bad_request` body.
"""
from __future__ import annotations
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from badge_admin.errors import DomainError
from badge_admin.models.id_card import IdCard


def validate_status(value: Any, allowed: Iterable[str] = IdCard.ALL_STATUSES, field_name: str = 'status') -> str:
    """Return `value` when it names one of `allowed`.

    Naming a real status that cannot be requested (e.g. `expired`) passes here;
    reachability is the state machine's call and fails as `invalid_transition`.
    """
    allowed = tuple(allowed)
    if not isinstance(value, str) or value not in allowed:
        raise DomainError(f"{field_name} must be one of {', '.join(allowed)}")
    return value


def require_int(data: Mapping[str, Any], key: str) -> int:
    raw = data.get(key)
    if raw is None:
        raise DomainError(f'{key} required')
    # JSON true/false would otherwise pass as 1/0
    if isinstance(raw, bool):
        raise DomainError(f'{key} invalid')
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise DomainError(f'{key} invalid')


def optional_date(data: Mapping[str, Any], key: str) -> Optional[date]:
    raw = data.get(key)
    if raw in (None, ''):
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise DomainError(f'{key} must be an ISO date (YYYY-MM-DD)')

__all__ = ['validate_status', 'require_int', 'optional_date']
