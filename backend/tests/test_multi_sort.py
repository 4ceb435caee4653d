from tests.test_lifecycle_helpers import ALL_CARD_ACTIONS, card_headers, create_card_and_assert
from tests.test_utils_seed import ensure_employee, unique


def test_cards_multi_sort(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'sort')
    employee = ensure_employee(unique('EMPS'))
    a = create_card_and_assert(client, headers, employee=employee, expiry_date='2032-01-31')
    b = create_card_and_assert(client, headers, employee=employee, expiry_date='2032-01-31')
    c = create_card_and_assert(client, headers, employee=employee, expiry_date='2031-01-31')
    client.post(f"/id-cards/{a['id']}/ready", headers=headers)

    resp = client.get(f'/id-cards?employee_id={employee.id}&sort=-expiry_date,-id', headers=headers)
    assert resp.status_code == 200
    assert [r['id'] for r in resp.get_json()['data']] == [b['id'], a['id'], c['id']]

    # ties fall back to ascending id
    by_status = client.get(f'/id-cards?employee_id={employee.id}&sort=status', headers=headers).get_json()
    assert [r['id'] for r in by_status['data']] == [b['id'], c['id'], a['id']]


def test_sort_rejects_unknown_and_repeated_fields(client):
    _, headers = card_headers(client, ALL_CARD_ACTIONS, 'sortbad')
    unknown = client.get('/id-cards?sort=verification_code', headers=headers)
    assert unknown.status_code == 400
    assert unknown.get_json()['error']['detail'] == 'Invalid sort field verification_code'
    repeated = client.get('/id-cards?sort=id,-id', headers=headers)
    assert repeated.status_code == 400
    assert repeated.get_json()['error']['detail'] == 'Duplicate sort field id'
