from datetime import date, datetime, timezone
import pytest
from badge_admin.config.pagination import MAX_LIMIT, Page, normalize_pagination
from badge_admin.errors import DomainError
from badge_admin.services.lifecycle import EXPIRED, PRINTED, CardSnapshot, CardView
from badge_admin.utils.listing import Validators, card_validators, list_validators, presented_since
from badge_admin.utils.validation import optional_date, require_int, validate_status

LAST_WRITE = datetime(2024, 1, 2, 8, 0, 30)


def _record(**overrides):
    fields = dict(
        id=7, employee_id=1, template_id=1, verification_code='c' * 22, status=PRINTED,
        issue_date=date(2024, 1, 1), expiry_date=date(2024, 2, 10), created_by_id=1,
        status_changed_at=LAST_WRITE,
    )
    fields.update(overrides)
    return CardSnapshot(**fields)


def test_paging_bounds():
    assert normalize_pagination(None, None) == Page(50, 0)
    assert normalize_pagination('', '') == Page(50, 0)
    assert normalize_pagination('100000', '-5') == Page(MAX_LIMIT, 0)
    assert normalize_pagination('0', '3') == Page(1, 3)
    with pytest.raises(DomainError) as exc:
        normalize_pagination('abc', None)
    assert exc.value.status_code == 400
    assert exc.value.detail == 'limit must be an integer'


def test_status_and_body_fields_raise_bad_request():
    assert validate_status('expired') == 'expired'
    for bad in ('shredded', None, 3):
        with pytest.raises(DomainError) as exc:
            validate_status(bad)
        assert exc.value.to_payload()['error']['type'] == 'bad_request'
    assert require_int({'employee_id': '12'}, 'employee_id') == 12
    with pytest.raises(DomainError, match='employee_id required'):
        require_int({}, 'employee_id')
    with pytest.raises(DomainError, match='employee_id invalid'):
        require_int({'employee_id': True}, 'employee_id')
    assert optional_date({'expiry_date': ''}, 'expiry_date') is None
    with pytest.raises(DomainError):
        optional_date({'expiry_date': '31/12/2030'}, 'expiry_date')


def test_card_crossing_expiry_gets_fresh_validators():
    record = _record()
    before = card_validators(CardView(record, PRINTED))
    after = card_validators(CardView(record, EXPIRED))
    assert before.etag != after.etag
    assert before.last_modified == datetime(2024, 1, 2, 8, 0, 30, tzinfo=timezone.utc)
    # valid through the 10th, so it reads expired from midnight on the 11th
    assert after.last_modified == datetime(2024, 2, 11, tzinfo=timezone.utc)
    stored_expired = _record(status=EXPIRED, status_changed_at=datetime(2024, 2, 12, 9, 0))
    assert presented_since(CardView(stored_expired, EXPIRED)) == datetime(2024, 2, 12, 9, 0, tzinfo=timezone.utc)


def test_list_tag_follows_presented_status():
    page = Page(10, 0)
    printed = list_validators([{'id': 7, 'status': PRINTED}], 1, page, LAST_WRITE)
    expired = list_validators([{'id': 7, 'status': EXPIRED}], 1, page, LAST_WRITE)
    assert printed.etag != expired.etag
    assert list_validators([{'id': 7, 'status': PRINTED}], 1, page, LAST_WRITE).etag == printed.etag


def test_if_none_match_takes_precedence(app_instance):
    validators = Validators('abc', datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))
    stamp = 'Fri, 01 Mar 2024 09:00:00 GMT'
    with app_instance.test_request_context(headers={'If-None-Match': '"other"', 'If-Modified-Since': stamp}):
        assert validators.client_is_current() is False
    with app_instance.test_request_context(headers={'If-Modified-Since': stamp}):
        assert validators.client_is_current() is True
    with app_instance.test_request_context(headers={'If-Modified-Since': '2024-03-01T08:59:59Z'}):
        assert validators.client_is_current() is True
    with app_instance.test_request_context(headers={'If-Modified-Since': '2024-03-01T08:00:00Z'}):
        assert validators.client_is_current() is False
    with app_instance.test_request_context(headers={'If-None-Match': '"x", "abc"'}):
        assert validators.client_is_current() is True
