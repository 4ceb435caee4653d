from __future__ import annotations
from datetime import date
from flask import Blueprint, request, current_app
from sqlalchemy import and_, or_
from badge_admin import get_db
from badge_admin.decorators.auth import require_capability, current_actor
from badge_admin.models.id_card import IdCard
from badge_admin.services.lifecycle import (
    EXPIRED, LOST, PRINTED, READY_TO_PRINT, REPLACED, TERMINAL, utcnow,
)
from badge_admin.services.registry import get_lifecycle
from badge_admin.services.stores import snapshot_of
from badge_admin.utils.filters import apply_filters
from badge_admin.utils.listing import paginate, respond_card, respond_card_list
from badge_admin.utils.sorting import apply_multi_sort
from badge_admin.utils.validation import optional_date, require_int, validate_status

id_cards_bp = Blueprint('id_cards', __name__)


def _issuance_area():
    return current_app.config['ISSUANCE_AREA']


def _filter_effective_status(q, status: str):
    """Filter on the status a reader would see, expiry included."""
    today = utcnow().date()
    overdue = and_(IdCard.expiry_date.isnot(None), IdCard.expiry_date < today)
    if status == EXPIRED:
        return q.filter(or_(IdCard.status == EXPIRED, and_(IdCard.status.notin_(TERMINAL), overdue)))
    if status in TERMINAL:
        return q.filter(IdCard.status == status)
    return q.filter(IdCard.status == status, ~overdue)


@id_cards_bp.route('', methods=['GET', 'HEAD'])
@require_capability(_issuance_area, 'view')
def list_cards():
    session = get_db()
    q = session.query(IdCard)
    q = apply_filters(q, {
        'status': {'choices': IdCard.ALL_STATUSES, 'op': _filter_effective_status},
        'employee_id': {'coerce': int, 'op': lambda q, v: q.filter(IdCard.employee_id == v)},
        'template_id': {'coerce': int, 'op': lambda q, v: q.filter(IdCard.template_id == v)},
        'expires_from': {'coerce': date.fromisoformat, 'op': lambda q, v: q.filter(IdCard.expiry_date >= v)},
        'expires_to': {'coerce': date.fromisoformat, 'op': lambda q, v: q.filter(IdCard.expiry_date <= v)},
    }, request.args)
    allowed = {
        'id': IdCard.id,
        'status': IdCard.status,
        'issue_date': IdCard.issue_date,
        'expiry_date': IdCard.expiry_date,
        'created_at': IdCard.created_at,
        'updated_at': IdCard.updated_at,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, IdCard.id)
    rows, total, page = paginate(q)
    lifecycle = get_lifecycle()
    return respond_card_list([lifecycle.view_of(snapshot_of(c)) for c in rows], total, page)


@id_cards_bp.route('/<int:card_id>', methods=['GET', 'HEAD'])
@require_capability(_issuance_area, 'view')
def get_card(card_id: int):
    return respond_card(get_lifecycle().read(card_id))


@id_cards_bp.post('')
def create_card():
    actor = current_actor()
    data = request.json or {}
    view = get_lifecycle().create(
        actor,
        employee_id=require_int(data, 'employee_id'),
        template_id=require_int(data, 'template_id'),
        issue_date=optional_date(data, 'issue_date'),
        expiry_date=optional_date(data, 'expiry_date'),
    )
    return view.to_dict(), 201


def _transition(card_id: int, target: str):
    actor = current_actor()
    return get_lifecycle().request_transition(card_id, target, actor).to_dict()


@id_cards_bp.post('/<int:card_id>/ready')
def mark_ready(card_id: int):
    return _transition(card_id, READY_TO_PRINT)


@id_cards_bp.post('/<int:card_id>/print')
def mark_printed(card_id: int):
    return _transition(card_id, PRINTED)


@id_cards_bp.post('/<int:card_id>/lost')
def mark_lost(card_id: int):
    return _transition(card_id, LOST)


@id_cards_bp.post('/<int:card_id>/replace')
def mark_replaced(card_id: int):
    return _transition(card_id, REPLACED)


@id_cards_bp.post('/<int:card_id>/transition')
def transition(card_id: int):
    data = request.json or {}
    target = validate_status(data.get('status'), IdCard.ALL_STATUSES)
    return _transition(card_id, target)


@id_cards_bp.post('/<int:card_id>/reissue')
def reissue(card_id: int):
    actor = current_actor()
    data = request.json or {}
    old, new = get_lifecycle().reissue(
        card_id, actor,
        expiry_date=optional_date(data, 'expiry_date'),
        issue_date=optional_date(data, 'issue_date'),
    )
    return {'replaced': old.to_dict(), 'card': new.to_dict()}, 201


@id_cards_bp.delete('/<int:card_id>')
def delete_card(card_id: int):
    actor = current_actor()
    get_lifecycle().delete(card_id, actor)
    return {'status': 'deleted', 'id': card_id}
