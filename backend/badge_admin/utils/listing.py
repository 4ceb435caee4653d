"""Response helpers carrying HTTP validators (ETag / Last-Modified).

Listings and single ID cards are served with an ETag and, when the rows carry
timestamps, a Last-Modified header; a matching If-None-Match (or, absent that,
If-Modified-Since) yields 304. HEAD gets the headers only.

An ID card's presented status can change without a write when it crosses its
expiry date, so card validators are seeded with the effective status and dated
from the moment that status took hold.
"""
from __future__ import annotations
import hashlib
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import jsonify, make_response, request
from sqlalchemy.orm import Query

from badge_admin.config.pagination import Page, page_from_args
from badge_admin.services.lifecycle import EXPIRED, CardView

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """UTC, tz-aware, whole seconds. SQLite hands back naive UTC values."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def _iso(dt: Optional[datetime]) -> str:
    return dt.isoformat().replace('+00:00', 'Z') if dt else ''


def _fingerprint(*parts: Any) -> str:
    return hashlib.sha256(repr(parts).encode()).hexdigest()[:32]


def _parse_client_time(raw: Optional[str]) -> Optional[datetime]:
    # HTTP-date per RFC 9110, ISO 8601 for clients echoing X-Last-Modified-ISO
    if not raw:
        return None
    try:
        return canonicalize_timestamp(datetime.fromisoformat(raw.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return canonicalize_timestamp(parsedate_to_datetime(raw))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Validators:
    etag: str
    last_modified: Optional[datetime] = None

    def client_is_current(self) -> bool:
        if_none_match = request.headers.get('If-None-Match')
        if if_none_match:
            tags = {t.strip().strip('"') for t in if_none_match.split(',')}
            return self.etag in tags or '*' in tags
        since = _parse_client_time(request.headers.get('If-Modified-Since'))
        return bool(since and self.last_modified and self.last_modified <= since + TIMESTAMP_TOLERANCE)

    def stamp(self, resp):
        resp.headers['ETag'] = self.etag
        if self.last_modified:
            resp.headers['Last-Modified'] = format_datetime(self.last_modified, usegmt=True)
            resp.headers['X-Last-Modified-ISO'] = _iso(self.last_modified)
        return resp


def respond_with_validators(body: Any, validators: Validators):
    resp = make_response('', 304) if validators.client_is_current() else make_response(jsonify(body))
    validators.stamp(resp)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


# ---- listings ----

def paginate(q: Query) -> Tuple[List[Any], int, Page]:
    """Apply `?limit=&offset=` to an ordered query; returns (rows, total, page)."""
    page = page_from_args(request.args)
    total = q.count()
    return q.offset(page.offset).limit(page.limit).all(), total, page


def build_list_payload(rows: List[Dict[str, Any]], total: int, page: Page) -> Dict[str, Any]:
    return {
        'data': rows,
        'pagination': {'total': total, 'limit': page.limit, 'offset': page.offset, 'returned': len(rows)},
    }


def latest_timestamp(rows: Iterable[Any], attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [canonicalize_timestamp(v) for v in (getattr(r, attr, None) for r in rows) if isinstance(v, datetime)]
    return max(stamps) if stamps else None


def list_validators(rows: List[Dict[str, Any]], total: int, page: Page,
                    latest_ts: Optional[datetime] = None) -> Validators:
    latest = canonicalize_timestamp(latest_ts) if latest_ts else None
    # (id, status) per row so a listed card turning expired changes the tag
    seed = [(r.get('id'), r.get('status')) for r in rows]
    return Validators(_fingerprint(seed, total, page.limit, page.offset, _iso(latest)), latest)


def respond_list(rows: List[Dict[str, Any]], total: int, page: Page, latest_ts: Optional[datetime] = None):
    return respond_with_validators(build_list_payload(rows, total, page), list_validators(rows, total, page, latest_ts))


# ---- ID cards ----

def presented_since(view: CardView) -> Optional[datetime]:
    """When the card last changed as a reader sees it, computed expiry included."""
    stamps = []
    if view.record.status_changed_at:
        stamps.append(canonicalize_timestamp(view.record.status_changed_at))
    if view.status == EXPIRED and view.stored_status != EXPIRED and view.record.expiry_date:
        # expiry is inclusive of its date: the card reads expired from the next midnight UTC
        stamps.append(datetime.combine(view.record.expiry_date + timedelta(days=1), time.min, tzinfo=timezone.utc))
    return max(stamps) if stamps else None


def card_validators(view: CardView) -> Validators:
    since = presented_since(view)
    return Validators(_fingerprint(view.record.id, view.status, _iso(since)), since)


def respond_card(view: CardView):
    return respond_with_validators(view.to_dict(), card_validators(view))


def respond_card_list(views: List[CardView], total: int, page: Page):
    stamps = [s for s in (presented_since(v) for v in views) if s]
    return respond_list([v.to_dict() for v in views], total, page, max(stamps) if stamps else None)

__all__ = [
    'Validators', 'canonicalize_timestamp', 'paginate', 'build_list_payload', 'latest_timestamp',
    'list_validators', 'respond_list', 'respond_with_validators', 'presented_since', 'card_validators',
    'respond_card', 'respond_card_list',
]
