"""Audit logging decorator feeding route-level mutations to the audit sink.

Usage examples:

@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    ... return {'id': role.id, 'name': role.name}, 201

@audit_log('ROLE.PERM.REPLACE', entity='Role', entity_id_arg='role_id', area='Role Permission',
           meta_builder=lambda data, rv, args, kwargs: {'menus': len(data.get('menus', []))})
def replace_role_permissions(role_id): ...

Parameters:
  action: required audit action code (e.g. ROLE.CREATE)
  entity: optional entity label (Role, User, Menu)
  area: capability area the action was gated on (stored on the event)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the function argument / path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). If provided it overrides meta_keys.

Return handling:
  Flask view functions commonly return one of:
    dict
    (dict, status)
    (dict, status, headers)
  The decorator extracts the first element as the JSON payload for key/meta extraction while preserving the original return value.

Delivery goes through `record_safely`: a failing sink is logged and never changes the response.
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import g

from badge_admin.services.audit import AuditEvent, record_safely
from badge_admin.services.registry import get_audit_sink

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, original_rv) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        data = rv[0]
        return data, rv
    return rv, rv


def _emit(action: str, area: Optional[str], entity: Optional[str], entity_id, meta: Optional[dict]):
    user = g.get('current_user')
    record_safely(get_audit_sink(), AuditEvent(
        actor_user_id=user.id if user is not None else None,
        actor_role_id=user.role_id if user is not None else None,
        action=action,
        area=area,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=meta or {},
    ))


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    area: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    # Diff support
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                try:
                    before_snapshot = pre_fetch(args, kwargs)
                except Exception:
                    logger.exception('Audit pre-fetch failed for %s', action)
            rv = fn(*args, **kwargs)
            try:
                data, _ = _extract_payload(rv)
                if not isinstance(data, dict):  # nothing to inspect
                    _emit(action, area, entity, kwargs.get(entity_id_arg) if entity_id_arg else None, None)
                    return rv
                entity_id = None
                if entity_id_key and entity_id_key in data:
                    entity_id = data.get(entity_id_key)
                elif entity_id_arg and entity_id_arg in kwargs:
                    entity_id = kwargs.get(entity_id_arg)
                meta = None
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs)
                elif meta_keys:
                    meta = {k: data.get(k) for k in meta_keys if k in data}
                if diff_keys and isinstance(before_snapshot, dict):
                    changes = {}
                    for k in diff_keys:
                        if k in before_snapshot and k in data and before_snapshot.get(k) != data.get(k):
                            changes[k] = {'before': before_snapshot.get(k), 'after': data.get(k)}
                    if changes:
                        meta = dict(meta or {})
                        meta['changes'] = changes
                _emit(action, area, entity, entity_id, meta)
            except Exception:
                # the mutation already happened; a broken audit must not turn it into an error
                logger.exception('Audit decorator failed for %s', action)
            return rv
        return wrapper
    return outer

__all__ = ['audit_log']
