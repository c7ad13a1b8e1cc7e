from codebyte.payments import ledger
from codebyte.payments.access import (
    AccessDecision,
    AccessState,
    ContentGate,
    apply_gate,
    decide_access,
)
from codebyte.payments.gateway import SessionStatus


def _paid_session(user_id, resource_id, resource_type='documentation') -> SessionStatus:
    return SessionStatus(
        id='cs_1',
        payment_status='paid',
        metadata={'user_id': str(user_id), 'resource_type': resource_type, 'resource_id': str(resource_id)},
        amount_total=1000,
        currency='usd',
    )


def test_free_gate_starts_unlocked() -> None:
    gate = ContentGate(price=0)

    assert gate.state == AccessState.UNLOCKED
    assert gate.reason == 'free'
    assert gate.resolve(False) == AccessState.UNLOCKED


def test_priced_gate_waits_for_ledger_then_settles() -> None:
    gate = ContentGate(price=10)

    assert gate.state == AccessState.CHECKING
    assert gate.resolve(False) == AccessState.LOCKED
    assert gate.reason == 'not_purchased'
    assert gate.resolve(True) == AccessState.LOCKED


def test_locked_gate_unlocks_after_purchase() -> None:
    gate = ContentGate(price=10)
    gate.resolve(False)

    assert gate.unlock() == AccessState.UNLOCKED
    assert gate.reason == 'purchased'
    assert gate.is_unlocked


def test_free_resource_never_consults_ledger(db, user, free_doc, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise AssertionError('ledger should not be consulted for free content')

    monkeypatch.setattr(ledger, 'has_purchased', fail)

    decision = decide_access(free_doc, user, db)

    assert decision.state == AccessState.UNLOCKED
    assert decision.reason == 'free'


def test_anonymous_reader_is_locked_out_of_paid_resource(db, paid_doc) -> None:
    decision = decide_access(paid_doc, None, db)

    assert decision.state == AccessState.LOCKED
    assert decision.reason == 'anonymous'


def test_verified_session_unlocks_matching_resource(db, user, paid_doc) -> None:
    decision = decide_access(paid_doc, user, db, verified_session=_paid_session(user.id, paid_doc.id))

    assert decision.is_unlocked
    assert decision.reason == 'verified_session'


def test_verified_session_for_other_resource_does_not_unlock(db, user, paid_doc) -> None:
    mismatched = [
        _paid_session(user.id, paid_doc.id + 100),
        _paid_session(user.id, paid_doc.id, resource_type='course'),
        _paid_session(user.id + 100, paid_doc.id),
    ]

    for session in mismatched:
        assert decide_access(paid_doc, user, db, verified_session=session).state == AccessState.LOCKED


def test_apply_gate_strips_locked_payload() -> None:
    payload = {
        'id': 1,
        'content': 'word ' * 200,
        'key_features': ['a'],
        'code_examples': [{'title': 't', 'code': 'c', 'description': 'd'}],
        'pro_tip': 'tip',
        'sections': [{'id': 2, 'title': 'Part', 'content': 'secret'}],
    }
    decision = AccessDecision(state=AccessState.LOCKED, reason='not_purchased', price=10.0, currency='usd')

    gated = apply_gate(payload, decision)

    assert len(gated['content']) <= 403
    assert gated['content'].endswith('...')
    assert gated['key_features'] == []
    assert gated['code_examples'] == []
    assert gated['pro_tip'] is None
    assert gated['sections'] == [{'id': 2, 'title': 'Part', 'content': None}]
    assert gated['access']['state'] == 'locked'
    assert payload['pro_tip'] == 'tip'


def test_apply_gate_passes_unlocked_payload_through() -> None:
    payload = {'id': 1, 'content': 'full text', 'pro_tip': 'tip'}
    decision = AccessDecision(state=AccessState.UNLOCKED, reason='free', price=0, currency='usd')

    gated = apply_gate(payload, decision)

    assert gated['content'] == 'full text'
    assert gated['pro_tip'] == 'tip'
    assert gated['access'] == {'state': 'unlocked', 'reason': 'free', 'price': 0, 'currency': 'usd'}
