from datetime import timedelta
import pytest
from badge_admin.constants.permissions import ROLE_PRESETS
from badge_admin.errors import CodeAlreadyBound, RecordNotFound
from badge_admin.services.lifecycle import LOST, PRINTED, READY_TO_PRINT, REPLACED
from badge_admin.services.verification import (
    REASON_EMPLOYEE_INACTIVE, REASON_EXPIRED, REASON_LOST, REASON_NOT_PRINTED, REASON_REPLACED,
    VerificationService,
)
from tests.fakes import FakeCardStore, FrozenClock, World


@pytest.fixture()
def world():
    return World(ROLE_PRESETS)


def _card(world, *targets, expiry_date=None):
    admin = world.actor('Admin')
    card = world.lifecycle.create(admin, 1, 1, expiry_date=expiry_date)
    for target in targets:
        world.lifecycle.request_transition(card.record.id, target, admin)
    return card.record.id, card.record.verification_code


def test_printed_card_of_active_employee_is_valid(world):
    _, code = _card(world, READY_TO_PRINT, PRINTED)
    result = world.verifier.verify(code)
    assert result.valid is True
    assert result.reason is None
    body = result.to_public_dict()
    assert body['status'] == PRINTED
    assert body['subject']['name'] == 'Jane Doe'
    assert body['subject']['employee_code'] == 'EMP0001'
    # internal identifiers stay private
    assert 'verification_code' not in body['card']
    assert 'created_by_id' not in body['card']


def test_unprinted_card_is_not_valid(world):
    _, code = _card(world, READY_TO_PRINT)
    result = world.verifier.verify(code)
    assert (result.valid, result.reason) == (False, REASON_NOT_PRINTED)


@pytest.mark.parametrize('target,reason', [(LOST, REASON_LOST), (REPLACED, REASON_REPLACED)])
def test_verify_reports_the_latest_status(world, target, reason):
    record_id, code = _card(world, READY_TO_PRINT, PRINTED)
    assert world.verifier.verify(code).valid
    world.lifecycle.request_transition(record_id, target, world.actor('Admin'))
    result = world.verifier.verify(code)
    assert (result.valid, result.status, result.reason) == (False, target, reason)


def test_overdue_card_verifies_as_expired(world):
    _, code = _card(world, READY_TO_PRINT, PRINTED, expiry_date=world.clock.today)
    assert world.verifier.verify(code).valid
    world.clock.advance(days=1)
    result = world.verifier.verify(code)
    assert (result.valid, result.status, result.reason) == (False, 'expired', REASON_EXPIRED)


def test_inactive_employee_invalidates_printed_card(world):
    _, code = _card(world, READY_TO_PRINT, PRINTED)
    world.cards.subjects[1]['status'] = 'inactive'
    result = world.verifier.verify(code)
    assert (result.valid, result.reason) == (False, REASON_EMPLOYEE_INACTIVE)


@pytest.mark.parametrize('code', [None, '', 'short', 'has spaces in it', 'x' * 65, '../../etc/passwd'])
def test_malformed_codes_are_not_found(world, code):
    with pytest.raises(RecordNotFound):
        world.verifier.verify(code)


def test_unknown_and_purged_codes_look_alike(world):
    record_id, code = _card(world)
    with pytest.raises(RecordNotFound) as unknown:
        world.verifier.verify('A' * 22)
    world.lifecycle.delete(record_id, world.actor('Admin'))
    with pytest.raises(RecordNotFound) as purged:
        world.verifier.verify(code)
    assert unknown.value.detail == purged.value.detail


def test_codes_are_unique_and_never_reused(world):
    codes = {_card(world)[1] for _ in range(25)}
    assert len(codes) == 25
    record_id, code = _card(world)
    world.lifecycle.delete(record_id, world.actor('Admin'))
    assert world.cards.code_in_use(code)


def test_mint_retries_past_collisions():
    store = FakeCardStore()
    store.ledger['taken-code-1'] = 1
    minted = iter(['taken-code-1', 'fresh-code-2'])
    verifier = VerificationService(store, code_factory=lambda: next(minted))
    assert verifier.mint() == 'fresh-code-2'


def test_mint_gives_up_after_repeated_collisions():
    store = FakeCardStore()
    store.ledger['always-the-same'] = 1
    verifier = VerificationService(store, code_factory=lambda: 'always-the-same')
    with pytest.raises(RuntimeError):
        verifier.mint()


def test_a_card_is_bound_once(world):
    record_id, code = _card(world)
    with pytest.raises(CodeAlreadyBound):
        world.verifier.issue(record_id)
    assert world.cards.records[record_id].verification_code == code


def test_default_codes_are_url_safe_and_long():
    verifier = VerificationService(FakeCardStore())
    code = verifier.mint()
    assert len(code) >= 20
    assert all(c.isalnum() or c in '-_' for c in code)


def test_codes_from_a_larger_byte_setting_still_verify():
    store = FakeCardStore()
    store.add_subject(1)
    clock = FrozenClock()
    verifier = VerificationService(store, clock=clock, code_bytes=96)
    record_id = store.insert_record(employee_id=1, template_id=1, issue_date=clock.today, expiry_date=None,
                                    created_by_id=1, created_at=clock.now)
    code = verifier.issue(record_id)
    assert len(code) == 128
    assert verifier.verify(code).record.id == record_id


def test_code_byte_setting_has_a_floor():
    with pytest.raises(ValueError):
        VerificationService(FakeCardStore(), code_bytes=4)
