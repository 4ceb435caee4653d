from badge_admin import get_db
from badge_admin.models.authz import User
from badge_admin.services.permission_matrix import PermissionMatrix, grant_set_from_titles
from tests.test_lifecycle_helpers import login_headers
from tests.test_utils_seed import ensure_catalog, ensure_role, ensure_user, matrix_store, seed_user_with_grants, unique


def test_login_and_me(client):
    # Seed a user manually
    session = get_db()
    u = User(name='T', email='t@example.com', password_hash='')
    u.set_password('pw')
    session.add(u)
    session.commit()

    # Login
    resp = client.post('/iam/auth/login', json={'email': 't@example.com', 'password': 'pw'})
    assert resp.status_code == 200, resp.get_json()
    token = resp.get_json()['access_token']

    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    body = me.get_json()
    assert body['email'] == 't@example.com'
    assert body['role_id'] is None
    assert body['grants'] is None
    assert body['grants_stale'] is False


def test_login_rejects_bad_input(client):
    ensure_user('wrongpw@example.com')
    assert client.post('/iam/auth/login', json={'email': 'wrongpw@example.com'}).status_code == 400
    bad = client.post('/iam/auth/login', json={'email': 'wrongpw@example.com', 'password': 'nope'})
    assert bad.status_code == 401
    assert bad.get_json()['error']['type'] == 'unauthorized'
    assert client.post('/iam/auth/login', json={'email': 'ghost@example.com', 'password': 'pw'}).status_code == 401


def test_token_carries_grant_snapshot_and_goes_stale(client):
    user = seed_user_with_grants({'Generate ID': ['view', 'generate']}, 'stale')
    headers = login_headers(client, user.email)
    me = client.get('/iam/auth/me', headers=headers).get_json()
    assert me['grants_version'] == 1
    assert me['grants_stale'] is False
    sub = me['grants']['menus'][0]['sub_menus'][0]
    assert sub['title'] == 'Generate ID' and sub['can_generate'] is True

    catalog = ensure_catalog()
    PermissionMatrix(matrix_store()).replace(user.role_id, grant_set_from_titles(user.role_id, {'Generate ID': ['view']}, catalog))
    stale = client.get('/iam/auth/me', headers=headers).get_json()
    assert stale['grants_stale'] is True
    assert stale['grants_version'] == 2
    # enforcement never trusts the token copy
    denied = client.get('/iam/capabilities', query_string={'area': 'Generate ID', 'action': 'generate'}, headers=headers)
    assert denied.get_json()['allowed'] is False

    refreshed = client.post('/iam/auth/refresh', headers=headers)
    assert refreshed.status_code == 200
    assert refreshed.get_json()['grants_version'] == 2
    fresh_headers = {'Authorization': f"Bearer {refreshed.get_json()['access_token']}"}
    assert client.get('/iam/auth/me', headers=fresh_headers).get_json()['grants_stale'] is False


def test_role_change_applies_without_new_token(client):
    user = seed_user_with_grants({'Roles': ['view']}, 'rolechange')
    headers = login_headers(client, user.email)
    assert client.get('/iam/roles', headers=headers).status_code == 200
    other = ensure_role(unique('NoRoles'), {'Generate ID': ['view']})
    ensure_user(user.email, role=other)
    assert client.get('/iam/roles', headers=headers).status_code == 403
    assert client.get('/iam/auth/me', headers=headers).get_json()['grants_stale'] is True


def test_deactivated_user_is_locked_out(client):
    user = seed_user_with_grants({'Roles': ['view']}, 'inactive')
    headers = login_headers(client, user.email)
    session = get_db()
    user.is_active = False
    session.commit()
    assert client.get('/iam/auth/me', headers=headers).status_code == 401
    assert client.get('/iam/roles', headers=headers).status_code == 401
    assert client.post('/iam/auth/login', json={'email': user.email, 'password': 'pw'}).status_code == 401


def test_capability_map_for_own_role(client):
    user = seed_user_with_grants({'ID': ['view'], 'Generate ID': ['view', 'approve']}, 'capmap')
    headers = login_headers(client, user.email)
    body = client.get('/iam/capabilities', headers=headers).get_json()
    assert body['role_id'] == user.role_id
    caps = body['capabilities']
    assert caps['ID']['view'] is True and caps['ID']['approve'] is False
    assert caps['Generate ID']['approve'] is True
    assert caps['Print ID']['view'] is False
    assert client.get('/iam/capabilities').status_code == 401
