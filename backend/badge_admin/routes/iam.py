from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt, get_jwt_identity
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from badge_admin.models.authz import User, Role, Menu, SubMenu, RolePermission
from badge_admin.models.audit import AuditLog
from badge_admin import get_db
from badge_admin.constants.permissions import (
    ACTIONS, AREA_AUDIT_LOG, AREA_MENU, AREA_ROLES, AREA_ROLE_PERMISSION, AREA_USERS,
)
from badge_admin.decorators.audit import audit_log
from badge_admin.decorators.auth import require_capability, current_actor
from badge_admin.services.permission_matrix import GrantSet, parse_grant_payload
from badge_admin.services.registry import get_gate, get_matrix, services
from badge_admin.utils.listing import latest_timestamp, paginate, respond_list
from badge_admin.utils.naming import canonical_area_key

iam_bp = Blueprint('iam', __name__)


def _access_control_area():
    return current_app.config['ACCESS_CONTROL_AREA']


def _grants_payload(role_id):
    """Current grant snapshot as carried in tokens; an empty set when the role has none."""
    grant_set = get_matrix().snapshot(role_id) if role_id is not None else None
    if grant_set is None:
        return GrantSet(role_id=role_id).to_payload() if role_id is not None else None
    return grant_set.to_payload()


def _issue_token(user: User):
    grants = _grants_payload(user.role_id)
    claims = {
        'role_id': user.role_id,
        'grants': grants,
        'grants_version': grants['version'] if grants else 0,
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    return create_access_token(identity=str(user.id), additional_claims=claims), claims


# --- Auth ---

@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.verify_password(password) or not user.is_active:
        abort(401, description='invalid credentials')
    token, claims = _issue_token(user)
    return {'access_token': token, 'grants_version': claims['grants_version']}


@iam_bp.post('/auth/refresh')
@jwt_required()
def refresh():
    user = _active_token_user()
    token, claims = _issue_token(user)
    return {'access_token': token, 'grants_version': claims['grants_version']}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    user = _active_token_user()
    grants = _grants_payload(user.role_id)
    current_version = grants['version'] if grants else 0
    claims = get_jwt()
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'role_id': user.role_id,
        'role': user.role.name if user.role else None,
        'grants': grants,
        'grants_version': current_version,
        # the token's snapshot no longer matches the stored matrix (or the role changed)
        'grants_stale': claims.get('grants_version') != current_version or claims.get('role_id') != user.role_id,
    }


def _active_token_user() -> User:
    # Identity stored as string, cast back to int for DB lookup
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not user or not user.is_active:
        abort(401, description='user inactive or unknown')
    return user


@iam_bp.get('/capabilities')
def capabilities():
    """UI affordances for the caller's own role. Advisory; enforcement re-checks."""
    actor = current_actor()
    gate = get_gate()
    area = request.args.get('area')
    action = request.args.get('action')
    if area and action:
        decision = gate.authorize(actor.role_id, area, action)
        return {'area': area, 'action': action, 'allowed': decision.allowed, 'reason': decision.reason}
    if area:
        areas = [area]
    else:
        catalog = services().matrix_store.load_catalog()
        areas = [m.title for m in catalog.menus] + [s.title for m in catalog.menus for s in m.sub_areas]
    actions = [action] if action else list(ACTIONS)
    return {'role_id': actor.role_id, 'capabilities': gate.capabilities(actor.role_id, areas, actions)}


# --- Area catalog (menus / sub menus) ---

def _menu_json(m: Menu):
    return {
        'id': m.id,
        'title': m.title,
        'url': m.url,
        'icon': m.icon,
        'is_collapsible': m.is_collapsible,
        'sub_menus': [{'id': s.id, 'title': s.title, 'url': s.url} for s in m.sub_menus],
    }


@iam_bp.route('/menus', methods=['GET', 'HEAD'])
@require_capability(AREA_MENU, 'view')
def list_menus():
    session = get_db()
    q = session.query(Menu).options(selectinload(Menu.sub_menus)).populate_existing()
    rows, total, page = paginate(q.order_by(Menu.id.asc()))
    return respond_list([_menu_json(m) for m in rows], total, page, latest_timestamp(rows))


@iam_bp.post('/menus')
@require_capability(AREA_MENU, 'add')
@audit_log('MENU.CREATE', entity='Menu', area=AREA_MENU, entity_id_key='id', meta_keys=['title'])
def create_menu():
    data = request.json or {}
    title = (data.get('title') or '').strip()
    key = canonical_area_key(title)
    if not key:
        abort(400, description='title required')
    session = get_db()
    titles = session.execute(select(Menu.title)).scalars().all()
    if any(canonical_area_key(t) == key for t in titles):
        abort(409, description='menu title collides with an existing menu')
    menu = Menu(title=title, url=data.get('url'), icon=data.get('icon'), is_collapsible=bool(data.get('is_collapsible')))
    session.add(menu)
    session.commit()
    return _menu_json(menu), 201


@iam_bp.post('/menus/<int:menu_id>/sub-menus')
@require_capability(AREA_MENU, 'add')
@audit_log('MENU.SUB.CREATE', entity='SubMenu', area=AREA_MENU, entity_id_key='id', meta_keys=['title', 'menu_id'])
def create_sub_menu(menu_id: int):
    session = get_db()
    menu = session.execute(select(Menu).where(Menu.id == menu_id)).scalar_one_or_none()
    if not menu:
        abort(404)
    data = request.json or {}
    title = (data.get('title') or '').strip()
    key = canonical_area_key(title)
    if not key:
        abort(400, description='title required')
    titles = session.execute(select(SubMenu.title).where(SubMenu.menu_id == menu.id)).scalars().all()
    if any(canonical_area_key(t) == key for t in titles):
        abort(409, description='sub menu title collides within this menu')
    sub = SubMenu(title=title, url=data.get('url'))
    menu.sub_menus.append(sub)
    session.commit()
    return {'id': sub.id, 'menu_id': menu.id, 'title': sub.title, 'url': sub.url}, 201


# --- Roles ---

@iam_bp.route('/roles', methods=['GET', 'HEAD'])
@require_capability(AREA_ROLES, 'view')
def list_roles():
    session = get_db()
    q = session.query(Role)
    rows, total, page = paginate(q.order_by(Role.id.asc()))
    versions = dict(session.execute(
        select(RolePermission.role_id, RolePermission.version).where(RolePermission.role_id.in_([r.id for r in rows]))
    ).all())
    data = [
        {'id': r.id, 'name': r.name, 'description': r.description, 'is_system': r.is_system,
         'grants_version': versions.get(r.id, 0)}
        for r in rows
    ]
    return respond_list(data, total, page, latest_timestamp(rows))


@iam_bp.post('/roles')
@require_capability(AREA_ROLES, 'add')
@audit_log('ROLE.CREATE', entity='Role', area=AREA_ROLES, entity_id_key='id', meta_keys=['name'])
def create_role():
    data = request.json or {}
    name = data.get('name')
    if not name:
        abort(400, description='name required')
    session = get_db()
    if session.execute(select(Role).where(Role.name == name)).scalar_one_or_none():
        abort(409, description='role exists')
    role = Role(name=name, is_system=False, description=data.get('description'))
    session.add(role)
    session.commit()
    return {'id': role.id, 'name': role.name}, 201


def _role_or_404(role_id: int) -> Role:
    role = get_db().execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if not role:
        abort(404)
    return role


@iam_bp.get('/roles/<int:role_id>/permissions')
@require_capability(_access_control_area, 'view')
def get_role_permissions(role_id: int):
    role = _role_or_404(role_id)
    return _grants_payload(role.id)


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_capability(_access_control_area, 'assign')
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    area=AREA_ROLE_PERMISSION,
    entity_id_arg='role_id',
    meta_builder=lambda data, rv, a, kw: {'version': data.get('version'), 'menus': len(data.get('menus', []))},
)
def replace_role_permissions(role_id: int):
    role = _role_or_404(role_id)
    catalog = services().matrix_store.load_catalog()
    # GrantPayloadError renders as 400 through the unified handler
    grant_set = parse_grant_payload(role.id, request.json or {}, catalog)
    saved = get_matrix().replace(role.id, grant_set)
    return saved.to_payload()


@iam_bp.delete('/roles/<int:role_id>/permissions')
@require_capability(_access_control_area, 'delete')
@audit_log('ROLE.PERM.CLEAR', entity='Role', area=AREA_ROLE_PERMISSION, entity_id_arg='role_id', meta_keys=['removed'])
def clear_role_permissions(role_id: int):
    role = _role_or_404(role_id)
    removed = get_matrix().clear(role.id)
    return {'role_id': role.id, 'removed': removed}


# --- Users ---

def _user_json(u: User):
    return {'id': u.id, 'name': u.name, 'email': u.email, 'is_active': u.is_active, 'role_id': u.role_id}


def _validate_role_id(session, role_id):
    if role_id is None:
        return None
    if not isinstance(role_id, int) or isinstance(role_id, bool):
        abort(400, description='role_id must be int')
    if not session.execute(select(Role.id).where(Role.id == role_id)).first():
        abort(400, description=f'Unknown role id: {role_id}')
    return role_id


@iam_bp.post('/users')
@require_capability(AREA_USERS, 'add')
@audit_log('USER.CREATE', entity='User', area=AREA_USERS, entity_id_key='id', meta_keys=['email', 'role_id'])
def create_user():
    data = request.json or {}
    name = data.get('name'); email = data.get('email'); password = data.get('password')
    if not name or not email or not password:
        abort(400, description='name, email & password required')
    session = get_db()
    if session.execute(select(User.id).where(User.email == email)).first():
        abort(409, description='email in use')
    role_id = _validate_role_id(session, data.get('role_id'))
    user = User(name=name, email=email, password_hash='', role_id=role_id, is_active=data.get('is_active', True) is not False)
    user.set_password(password)
    session.add(user)
    session.commit()
    return _user_json(user), 201


@iam_bp.put('/users/<int:user_id>/role')
@require_capability(AREA_USERS, 'edit')
@audit_log(
    'USER.ROLE.SET',
    entity='User',
    area=AREA_USERS,
    entity_id_key='id',
    meta_keys=['role_id'],
    diff_keys=['role_id'],
    pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')),
)
def set_user_role(user_id: int):
    session = get_db()
    user = session.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    data = request.json or {}
    if 'role_id' not in data:
        abort(400, description='role_id required')
    user.role_id = _validate_role_id(session, data.get('role_id'))
    session.commit()
    return _user_json(user)


def _prefetch_user(user_id: int):  # helper for audit decorator pre_fetch
    u = get_db().execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    return {'role_id': u.role_id} if u else {}


# --- Audit Log Listing ---

@iam_bp.route('/audit/logs', methods=['GET', 'HEAD'])
@require_capability(AREA_AUDIT_LOG, 'view')
def list_audit_logs():
    session = get_db()
    q = session.query(AuditLog)
    actor = request.args.get('actor_user_id')
    if actor:
        try:
            q = q.filter(AuditLog.actor_user_id == int(actor))
        except ValueError:
            abort(400, description='actor_user_id must be int')
    for name in ('action', 'area', 'entity', 'entity_id', 'outcome'):
        value = request.args.get(name)
        if value:
            q = q.filter(getattr(AuditLog, name) == value)
    rows, total, page = paginate(q.order_by(AuditLog.id.desc()))
    data = [
        {
            'id': r.id,
            'actor_user_id': r.actor_user_id,
            'actor_role_id': r.actor_role_id,
            'action': r.action,
            'area': r.area,
            'entity': r.entity,
            'entity_id': r.entity_id,
            'outcome': r.outcome,
            'meta': r.meta,
            'created_at': r.created_at.isoformat() if r.created_at else None,
        } for r in rows
    ]
    # newest entry dates the listing
    return respond_list(data, total, page, latest_timestamp(rows, 'created_at'))
