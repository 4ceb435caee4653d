from functools import wraps
from typing import Callable, Union
from flask import abort, g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from sqlalchemy import select
from badge_admin import get_db
from badge_admin.models.authz import User
from badge_admin.services.lifecycle import Actor
from badge_admin.services.registry import get_gate


def current_user() -> User:
    """The authenticated user, re-read from the database on every call."""
    verify_jwt_in_request()
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        abort(401, description='invalid token identity')
    user = get_db().execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if user is None or not user.is_active:
        abort(401, description='user inactive or unknown')
    g.current_user = user
    return user


def current_actor() -> Actor:
    user = current_user()
    # role comes from the users row, never from token claims
    return Actor(user_id=user.id, role_id=user.role_id)


def require_capability(area: Union[str, Callable[[], str]], action: str):
    """Gate a view on (area, action) for the caller's current role.

    `area` may be a callable so config-driven titles resolve inside the request.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = current_actor()
            title = area() if callable(area) else area
            decision = get_gate().authorize(actor.role_id, title, action)
            if not decision:
                abort(403, description=f'Missing {action} permission on {title}')
            return fn(*args, **kwargs)
        wrapper.required_capability = (area, action)
        return wrapper
    return outer
