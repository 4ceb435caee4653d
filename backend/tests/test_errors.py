from tests.test_lifecycle_helpers import card_headers, create_card_and_assert, headers_with_grants


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert 'error' in body
    assert body['error']['status'] == 404
    assert body['error']['type'] == 'not_found'
    assert 'detail' in body['error']


def test_method_not_allowed_shape(client):
    resp = client.get('/iam/auth/login')
    assert resp.status_code == 405
    assert resp.get_json()['error']['type'] == 'method_not_allowed'


def test_error_types_stay_distinct(client):
    _, clerk = card_headers(client, ['view', 'generate'], 'errtypes')
    card = create_card_and_assert(client, clerk)
    denied = client.post(f"/id-cards/{card['id']}/ready", headers=clerk)
    invalid = client.post(f"/id-cards/{card['id']}/print", headers=clerk)
    missing = client.post('/id-cards/99999999/ready', headers=clerk)
    assert (denied.status_code, denied.get_json()['error']['type']) == (403, 'denied')
    assert (invalid.status_code, invalid.get_json()['error']['type']) == (400, 'invalid_transition')
    assert (missing.status_code, missing.get_json()['error']['type']) == (404, 'not_found')
    assert client.get('/verify/nope-nope-nope').get_json()['error']['type'] == 'not_found'


def test_internal_error_shape(client, monkeypatch):
    _, headers = headers_with_grants(client, {'Roles': ['view']}, 'boom')
    # Monkeypatch AFTER login so auth works; only break roles listing
    import badge_admin.routes.iam as iam_mod

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')

        def execute(self, *a, **k):
            raise RuntimeError('explode')

    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/roles', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'
    assert body['error']['type'] == 'internal'
