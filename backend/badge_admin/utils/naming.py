"""Canonical keys for capability area titles.

Area titles are authored in several places (role management screens, seed data,
API payloads) and must resolve identically everywhere:

    canonical_area_key('ID Template') == canonical_area_key('id-template') == 'idtemplate'
"""
from __future__ import annotations

import re
from typing import Optional

_IGNORED = re.compile(r'[-_\s]+')


def canonical_area_key(title: Optional[str]) -> str:
    """Lowercase the title and drop hyphens, underscores and whitespace."""
    if title is None:
        return ''
    return _IGNORED.sub('', str(title).lower())


def same_area(a: Optional[str], b: Optional[str]) -> bool:
    key = canonical_area_key(a)
    # an empty key never denotes an area
    return bool(key) and key == canonical_area_key(b)

__all__ = ['canonical_area_key', 'same_area']
