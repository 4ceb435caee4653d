"""Offset paging for list endpoints: `?limit=&offset=`."""
from __future__ import annotations
from typing import Mapping, NamedTuple, Optional

from badge_admin.errors import DomainError

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


class Page(NamedTuple):
    limit: int
    offset: int


def _int_arg(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise DomainError(f'{name} must be an integer')


def normalize_pagination(limit_raw: Optional[str], offset_raw: Optional[str]) -> Page:
    """Clamp limit into 1..MAX_LIMIT and offset to >= 0; non-integers are a 400."""
    limit = _int_arg('limit', limit_raw, DEFAULT_LIMIT)
    offset = _int_arg('offset', offset_raw, 0)
    return Page(max(1, min(limit, MAX_LIMIT)), max(0, offset))


def page_from_args(args: Mapping[str, str]) -> Page:
    return normalize_pagination(args.get('limit'), args.get('offset'))

__all__ = ['DEFAULT_LIMIT', 'MAX_LIMIT', 'Page', 'normalize_pagination', 'page_from_args']
