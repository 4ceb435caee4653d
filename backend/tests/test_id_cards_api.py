from badge_admin import get_db
from badge_admin.constants.permissions import AREA_GENERATE_ID
from badge_admin.models.authz import Role
from badge_admin.models.id_card import IdCard, IssuedCode
from tests.test_lifecycle_helpers import (
    ALL_CARD_ACTIONS, assert_transition, card_headers, create_card_and_assert,
)
from tests.test_utils_seed import ensure_employee, ensure_role, ensure_template, unique


def test_card_lifecycle_flow(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'flow')
    card = create_card_and_assert(client, headers, expiry_date='2999-12-31')
    cid = card['id']
    code = card['verification_code']

    got = client.get(f'/id-cards/{cid}', headers=headers)
    assert got.status_code == 200
    assert got.get_json()['verification_code'] == code

    # not printed yet: verifiable but not valid
    early = client.get(f'/verify/{code}')
    assert early.status_code == 200
    assert early.get_json()['valid'] is False
    assert early.get_json()['reason'] == 'not_printed'

    assert_transition(client, f'/id-cards/{cid}/ready', headers, 200, 'ready_to_print')
    printed = assert_transition(client, f'/id-cards/{cid}/print', headers, 200, 'printed').get_json()
    assert printed['printed_at'] and printed['printed_by_id']

    valid = client.get(f'/verify/{code}').get_json()
    assert valid['valid'] is True and valid['status'] == 'printed'
    assert valid['subject']['name'] == 'Jane Doe'

    assert_transition(client, f'/id-cards/{cid}/lost', headers, 200, 'lost')
    after = client.get(f'/verify/{code}').get_json()
    assert (after['valid'], after['status'], after['reason']) == (False, 'lost', 'lost')
    assert_transition(client, f'/id-cards/{cid}/replace', headers, 400, expected_error_type='invalid_transition')


def test_clerk_cannot_approve_over_http(client):
    user, clerk = card_headers(client, ['view', 'generate'], 'clerk')
    card = create_card_and_assert(client, clerk)
    assert_transition(client, f"/id-cards/{card['id']}/ready", clerk, 403, expected_error_type='denied')
    assert client.get(f"/id-cards/{card['id']}", headers=clerk).get_json()['status'] == 'created'

    # same token: grants are re-read on every request
    ensure_role(get_db().get(Role, user.role_id).name, {AREA_GENERATE_ID: ['view', 'generate', 'approve']})
    assert_transition(client, f"/id-cards/{card['id']}/ready", clerk, 200, 'ready_to_print')


def test_invalid_transition_and_system_only_target(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'invalid')
    card = create_card_and_assert(client, headers)
    cid = card['id']
    assert_transition(client, f'/id-cards/{cid}/print', headers, 400, expected_error_type='invalid_transition')
    resp = client.post(f'/id-cards/{cid}/transition', json={'status': 'expired'}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['type'] == 'invalid_transition'
    bogus = client.post(f'/id-cards/{cid}/transition', json={'status': 'shredded'}, headers=headers)
    assert bogus.status_code == 400
    assert bogus.get_json()['error']['type'] == 'bad_request'
    ok = client.post(f'/id-cards/{cid}/transition', json={'status': 'ready_to_print'}, headers=headers)
    assert ok.status_code == 200 and ok.get_json()['status'] == 'ready_to_print'


def test_overdue_card_reads_expired_and_cannot_be_printed(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'overdue')
    employee = ensure_employee()
    resp = client.post('/id-cards', json={
        'employee_id': employee.id, 'template_id': ensure_template().id,
        'issue_date': '2020-01-01', 'expiry_date': '2020-12-31',
    }, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['status'] == 'expired'
    assert_transition(client, f"/id-cards/{body['id']}/ready", headers, 400, expected_error_type='invalid_transition')
    stored = get_db().get(IdCard, body['id'], populate_existing=True)
    assert stored.status == 'expired'
    listed = client.get(f'/id-cards?employee_id={employee.id}&status=expired', headers=headers).get_json()
    assert [c['id'] for c in listed['data']] == [body['id']]


def test_create_validation(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'createval')
    template = ensure_template()
    missing = client.post('/id-cards', json={'template_id': template.id}, headers=headers)
    assert missing.status_code == 400
    unknown = client.post('/id-cards', json={'employee_id': 987654, 'template_id': template.id}, headers=headers)
    assert unknown.status_code == 400
    assert unknown.get_json()['error']['detail'] == 'employee_id invalid'
    inactive_tpl = ensure_template('Retired', is_active=False)
    retired = client.post('/id-cards', json={'employee_id': ensure_employee().id, 'template_id': inactive_tpl.id}, headers=headers)
    assert retired.status_code == 400
    bad_date = client.post('/id-cards', json={'employee_id': ensure_employee().id, 'template_id': template.id,
                                              'expiry_date': '31/12/2030'}, headers=headers)
    assert bad_date.status_code == 400


def test_mutations_require_authentication(client):
    assert client.post('/id-cards', json={}).status_code == 401
    assert client.post('/id-cards/1/ready').status_code == 401
    assert client.get('/id-cards').status_code == 401


def test_generate_requires_generate_capability(client):
    _, viewer = card_headers(client, ['view'], 'viewer')
    employee = ensure_employee()
    resp = client.post('/id-cards', json={'employee_id': employee.id, 'template_id': ensure_template().id}, headers=viewer)
    assert resp.status_code == 403
    assert resp.get_json()['error']['type'] == 'denied'
    listed = client.get(f'/id-cards?employee_id={employee.id}', headers=viewer).get_json()
    assert listed['pagination']['total'] == 0


def test_delete_retires_code(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'delete')
    card = create_card_and_assert(client, headers)
    code = card['verification_code']
    resp = client.delete(f"/id-cards/{card['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'deleted', 'id': card['id']}
    assert client.get(f"/id-cards/{card['id']}", headers=headers).status_code == 404
    gone = client.get(f'/verify/{code}')
    assert gone.status_code == 404
    assert gone.get_json()['error']['type'] == 'not_found'
    ledger = get_db().query(IssuedCode).filter_by(code=code).populate_existing().one()
    assert ledger.id_card_id is None


def test_verify_unknown_and_malformed_codes_look_alike(client):
    unknown = client.get('/verify/' + 'Q' * 22)
    malformed = client.get('/verify/not%20a%20code')
    assert unknown.status_code == malformed.status_code == 404
    assert unknown.get_json() == malformed.get_json()


def test_reissue_creates_successor(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'reissue')
    card = create_card_and_assert(client, headers, expiry_date='2999-01-01')
    cid = card['id']
    client.post(f'/id-cards/{cid}/ready', headers=headers)
    client.post(f'/id-cards/{cid}/print', headers=headers)
    resp = client.post(f'/id-cards/{cid}/reissue', json={}, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['replaced']['status'] == 'replaced'
    assert body['card']['status'] == 'created'
    assert body['card']['employee_id'] == card['employee_id']
    assert body['card']['verification_code'] != card['verification_code']
    old = client.get(f"/verify/{card['verification_code']}").get_json()
    assert old['reason'] == 'replaced'


def test_reissue_with_retired_template_leaves_card_printed(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'reissuefail')
    template = ensure_template(unique('Retiring'))
    card = create_card_and_assert(client, headers, template=template, expiry_date='2999-01-01')
    cid = card['id']
    client.post(f'/id-cards/{cid}/ready', headers=headers)
    client.post(f'/id-cards/{cid}/print', headers=headers)
    template.is_active = False
    get_db().commit()

    resp = client.post(f'/id-cards/{cid}/reissue', json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'template_id invalid'
    assert client.get(f'/id-cards/{cid}', headers=headers).get_json()['status'] == 'printed'
    listed = client.get(f"/id-cards?employee_id={card['employee_id']}", headers=headers).get_json()
    assert [c['id'] for c in listed['data']] == [cid]
    template.is_active = True
    get_db().commit()
    # the inherited expiry would precede the new issue date
    bad_dates = client.post(f'/id-cards/{cid}/reissue', json={'issue_date': '2999-06-01'}, headers=headers)
    assert bad_dates.status_code == 400
    assert client.get(f'/id-cards/{cid}', headers=headers).get_json()['status'] == 'printed'


def test_list_filters_and_sort(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'list')
    employee = ensure_employee()
    first = create_card_and_assert(client, headers, employee=employee)
    second = create_card_and_assert(client, headers, employee=employee)
    client.post(f"/id-cards/{second['id']}/ready", headers=headers)

    all_cards = client.get(f'/id-cards?employee_id={employee.id}&sort=-id', headers=headers).get_json()
    assert [c['id'] for c in all_cards['data']] == [second['id'], first['id']]
    ready = client.get(f'/id-cards?employee_id={employee.id}&status=ready_to_print', headers=headers).get_json()
    assert [c['id'] for c in ready['data']] == [second['id']]
    assert client.get('/id-cards?status=shredded', headers=headers).status_code == 400
    assert client.get('/id-cards?sort=verification_code', headers=headers).status_code == 400
    assert client.get('/id-cards?employee_id=abc', headers=headers).status_code == 400
