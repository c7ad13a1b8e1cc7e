import asyncio

import pytest
from fastapi import HTTPException

from codebyte.core import config
from codebyte.models.purchase import Purchase
from codebyte.payments import ledger
from codebyte.payments.gateway import GatewayEvent, SessionStatus
from codebyte.routes.payment_routes import (
    CreateCheckoutSessionRequest,
    PaymentSuccessRequest,
    create_checkout_session,
    payment_success,
    stripe_webhook,
    verify_session,
)


class FakeRequest:
    def __init__(self, payload: bytes):
        self._payload = payload

    async def body(self) -> bytes:
        return self._payload


def _checkout(db, user, gateway, **fields):
    return create_checkout_session(CreateCheckoutSessionRequest(**fields), db=db, current_user=user, gateway=gateway)


def _confirm(db, user, gateway, session_id):
    return payment_success(PaymentSuccessRequest(session_id=session_id), db=db, current_user=user, gateway=gateway)


def _post_webhook(db, gateway, payload: bytes, signature: str | None = 'valid-signature'):
    return asyncio.run(
        stripe_webhook(request=FakeRequest(payload), stripe_signature=signature, db=db, gateway=gateway)
    )


def _completed_event(session: SessionStatus, event_id: str = 'evt_1') -> GatewayEvent:
    return GatewayEvent(id=event_id, type='checkout.session.completed', session=session)


def test_purchase_flow_records_once_and_unlocks(db, user, paid_doc, fake_gateway) -> None:
    checkout = _checkout(db, user, fake_gateway, documentation_slug=' Async-Python ')
    session_id = checkout['data']['session_id']

    assert checkout['data']['url'].endswith(session_id)
    created = fake_gateway.created[0]
    assert created['resource'].id == paid_doc.id
    assert created['success_url'] == f'{config.APP_URL}/docs/async-python?session_id={{CHECKOUT_SESSION_ID}}'
    assert created['cancel_url'] == f'{config.APP_URL}/docs/async-python'

    fake_gateway.mark_paid(session_id)
    first = _confirm(db, user, fake_gateway, session_id)

    assert first['message'] == 'Purchase recorded successfully'
    purchase = first['data']['purchase']
    assert purchase.documentation_id == paid_doc.id
    assert purchase.amount == 10.0
    assert purchase.currency == 'usd'
    assert purchase.status == 'completed'
    assert purchase.stripe_session_id == session_id
    assert ledger.has_purchased(db, user.id, 'documentation', paid_doc.id)

    second = _confirm(db, user, fake_gateway, session_id)

    assert second['message'] == 'Resource already purchased'
    assert second['data']['purchase'].id == purchase.id
    assert db.query(Purchase).count() == 1


def test_checkout_uses_caller_redirect_urls(db, user, course, fake_gateway) -> None:
    _checkout(db, user, fake_gateway, course_id=course.id, success_url='https://app.test/ok', cancel_url='https://app.test/no')

    assert fake_gateway.created[0]['success_url'] == 'https://app.test/ok'
    assert fake_gateway.created[0]['cancel_url'] == 'https://app.test/no'


def test_course_purchase_is_recorded(db, user, course, fake_gateway) -> None:
    session_id = _checkout(db, user, fake_gateway, course_id=course.id)['data']['session_id']
    fake_gateway.mark_paid(session_id)

    purchase = _confirm(db, user, fake_gateway, session_id)['data']['purchase']

    assert purchase.resource_type == 'course'
    assert purchase.course_id == course.id
    assert purchase.amount == 49.0


def test_checkout_rejects_already_purchased_resource(db, user, paid_doc, fake_gateway) -> None:
    session_id = _checkout(db, user, fake_gateway, documentation_id=paid_doc.id)['data']['session_id']
    fake_gateway.mark_paid(session_id)
    _confirm(db, user, fake_gateway, session_id)

    with pytest.raises(HTTPException) as exception_info:
        _checkout(db, user, fake_gateway, documentation_id=paid_doc.id)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Resource already purchased'


def test_checkout_rejects_free_resource(db, user, free_doc, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _checkout(db, user, fake_gateway, documentation_id=free_doc.id)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'This resource is free and does not require checkout'
    assert fake_gateway.created == []


def test_checkout_requires_a_resource_identifier(db, user, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _checkout(db, user, fake_gateway)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Missing resource identifiers (document or course)'


def test_checkout_returns_not_found_for_unknown_resource(db, user, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _checkout(db, user, fake_gateway, documentation_slug='missing-guide')

    assert exception_info.value.status_code == 404


def test_unpaid_session_writes_nothing(db, user, paid_doc, fake_gateway) -> None:
    session_id = _checkout(db, user, fake_gateway, documentation_id=paid_doc.id)['data']['session_id']

    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, session_id)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Payment not completed'
    assert db.query(Purchase).count() == 0


def test_success_requires_session_id(db, user, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, '  ')

    assert exception_info.value.detail == 'Session ID is required'


def test_success_rejects_session_of_another_user(db, user, other_user, paid_doc, fake_gateway) -> None:
    session_id = _checkout(db, other_user, fake_gateway, documentation_id=paid_doc.id)['data']['session_id']
    fake_gateway.mark_paid(session_id)

    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, session_id)

    assert exception_info.value.status_code == 403
    assert db.query(Purchase).count() == 0


def test_success_rejects_session_without_resource(db, user, fake_gateway) -> None:
    fake_gateway.sessions['cs_bare'] = SessionStatus(id='cs_bare', payment_status='paid', metadata={})

    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, 'cs_bare')

    assert exception_info.value.detail == 'No purchasable resource found in session'


def test_success_surfaces_gateway_failure(db, user, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, 'cs_unknown')

    assert exception_info.value.status_code == 500
    assert exception_info.value.detail == 'Failed to verify session'


def test_verify_session_reports_paid_session(user, paid_doc, fake_gateway) -> None:
    session = fake_gateway.create_checkout_session(user, paid_doc, 'https://ok', 'https://cancel')
    fake_gateway.mark_paid(session.id)

    data = verify_session(session_id=session.id, gateway=fake_gateway)['data']['session']

    assert data['payment_status'] == 'paid'
    assert data['amount_total'] == 1000
    assert data['customer_email'] == 'reader@example.com'
    assert data['metadata']['resource_id'] == str(paid_doc.id)


def test_verify_session_rejects_unpaid_session(user, paid_doc, fake_gateway) -> None:
    session = fake_gateway.create_checkout_session(user, paid_doc, 'https://ok', 'https://cancel')

    with pytest.raises(HTTPException) as exception_info:
        verify_session(session_id=session.id, gateway=fake_gateway)

    assert exception_info.value.status_code == 400
    assert exception_info.value.message == 'payment_status: unpaid'


def test_webhook_records_completed_checkout_once(db, user, paid_doc, fake_gateway) -> None:
    session = fake_gateway.create_checkout_session(user, paid_doc, 'https://ok', 'https://cancel')
    fake_gateway.events[b'{"id": "evt_1"}'] = _completed_event(fake_gateway.mark_paid(session.id))

    first = _post_webhook(db, fake_gateway, b'{"id": "evt_1"}')
    replay = _post_webhook(db, fake_gateway, b'{"id": "evt_1"}')

    assert first == {'success': True, 'data': {'received': True, 'outcome': 'recorded'}}
    assert replay['data']['outcome'] == 'duplicate'
    assert ledger.has_purchased(db, user.id, 'documentation', paid_doc.id)
    assert db.query(Purchase).count() == 1


def test_webhook_then_success_endpoint_does_not_duplicate(db, user, paid_doc, fake_gateway) -> None:
    session = fake_gateway.create_checkout_session(user, paid_doc, 'https://ok', 'https://cancel')
    fake_gateway.events[b'evt'] = _completed_event(fake_gateway.mark_paid(session.id))

    _post_webhook(db, fake_gateway, b'evt')
    response = _confirm(db, user, fake_gateway, session.id)

    assert response['message'] == 'Resource already purchased'
    assert db.query(Purchase).count() == 1


def test_webhook_acknowledges_payment_failures(db, fake_gateway) -> None:
    fake_gateway.events[b'failed'] = GatewayEvent(
        id='evt_2',
        type='payment_intent.payment_failed',
        details={'object_id': 'pi_1', 'last_payment_error': {'message': 'card declined'}},
    )

    assert _post_webhook(db, fake_gateway, b'failed')['data']['outcome'] == 'logged'


def test_webhook_requires_signature(db, fake_gateway) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _post_webhook(db, fake_gateway, b'{}', signature=None)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No signature found'


def test_webhook_rejects_bad_signature(db, fake_gateway) -> None:
    fake_gateway.events[b'{}'] = GatewayEvent(id='evt_3', type='charge.refunded')

    with pytest.raises(HTTPException) as exception_info:
        _post_webhook(db, fake_gateway, b'{}', signature='forged')

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid signature'


def test_webhook_without_secret_is_a_server_error(db, fake_gateway) -> None:
    fake_gateway.webhook_secret = None

    with pytest.raises(HTTPException) as exception_info:
        _post_webhook(db, fake_gateway, b'{}')

    assert exception_info.value.status_code == 500
    assert exception_info.value.detail == 'Webhook not configured'


def test_success_rejects_session_without_owner(db, user, paid_doc, fake_gateway) -> None:
    fake_gateway.sessions['cs_anon'] = SessionStatus(
        id='cs_anon',
        payment_status='paid',
        metadata={'resource_type': 'documentation', 'resource_id': str(paid_doc.id)},
        amount_total=1000,
        currency='usd',
    )

    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, 'cs_anon')

    assert exception_info.value.status_code == 403
    assert db.query(Purchase).count() == 0


def _refunded_purchase(db, user, paid_doc, fake_gateway) -> str:
    session_id = _checkout(db, user, fake_gateway, documentation_id=paid_doc.id)['data']['session_id']
    fake_gateway.mark_paid(session_id)
    _confirm(db, user, fake_gateway, session_id)
    db.query(Purchase).one().status = 'refunded'
    db.commit()
    return session_id


def test_success_does_not_restore_refunded_purchase(db, user, paid_doc, fake_gateway) -> None:
    session_id = _refunded_purchase(db, user, paid_doc, fake_gateway)

    with pytest.raises(HTTPException) as exception_info:
        _confirm(db, user, fake_gateway, session_id)

    assert exception_info.value.status_code == 400
    assert exception_info.value.message == 'status: refunded'
    assert not ledger.has_purchased(db, user.id, 'documentation', paid_doc.id)


def test_webhook_redelivery_does_not_restore_refunded_purchase(db, user, paid_doc, fake_gateway) -> None:
    session_id = _refunded_purchase(db, user, paid_doc, fake_gateway)
    fake_gateway.events[b'redelivered'] = _completed_event(fake_gateway.sessions[session_id])

    response = _post_webhook(db, fake_gateway, b'redelivered')

    assert response['data']['outcome'] == 'refunded'
    assert not ledger.has_purchased(db, user.id, 'documentation', paid_doc.id)


def test_refunded_resource_can_be_bought_again(db, user, paid_doc, fake_gateway) -> None:
    _refunded_purchase(db, user, paid_doc, fake_gateway)

    session_id = _checkout(db, user, fake_gateway, documentation_id=paid_doc.id)['data']['session_id']
    fake_gateway.mark_paid(session_id)
    response = _confirm(db, user, fake_gateway, session_id)

    assert response['message'] == 'Purchase recorded successfully'
    assert response['data']['purchase'].status == 'completed'
    assert db.query(Purchase).count() == 1
