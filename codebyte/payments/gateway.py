"""Thin adapter over Stripe Checkout.

Only the three calls the purchase flow needs are exposed: creating a hosted
checkout session, reading one back, and verifying a signed webhook event.
Every Stripe failure surfaces as ``GatewayError``.
"""

import logging
from dataclasses import dataclass, field

import stripe

from codebyte.core import config
from codebyte.core.errors import GatewayError
from codebyte.models.course import Course
from codebyte.models.documentation import Documentation
from codebyte.models.user import User

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = '{CHECKOUT_SESSION_ID}'


class WebhookSignatureError(Exception):
    """Raised when a webhook payload does not carry a valid signature."""


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class SessionStatus:
    id: str
    payment_status: str
    metadata: dict = field(default_factory=dict)
    amount_total: int | None = None
    currency: str | None = None
    customer_email: str | None = None
    payment_intent_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == 'paid'

    @property
    def amount(self) -> float:
        return (self.amount_total or 0) / 100

    def names_resource(self, resource_type: str, resource_id: int) -> bool:
        return (
            self.metadata.get('resource_type') == resource_type
            and str(self.metadata.get('resource_id')) == str(resource_id)
        )


@dataclass
class GatewayEvent:
    id: str
    type: str
    session: SessionStatus | None = None
    details: dict = field(default_factory=dict)


def resource_type_of(resource) -> str:
    if isinstance(resource, Documentation):
        return 'documentation'
    if isinstance(resource, Course):
        return 'course'
    raise TypeError(f'Unsupported purchasable resource: {type(resource).__name__}')


def _field(obj, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _to_session_status(session) -> SessionStatus:
    payment_intent = _field(session, 'payment_intent')
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = _field(payment_intent, 'id')

    return SessionStatus(
        id=_field(session, 'id'),
        payment_status=_field(session, 'payment_status') or 'unpaid',
        metadata=dict(_field(session, 'metadata') or {}),
        amount_total=_field(session, 'amount_total'),
        currency=_field(session, 'currency'),
        customer_email=_field(_field(session, 'customer_details'), 'email') or _field(session, 'customer_email'),
        payment_intent_id=payment_intent,
    )


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str | None = None, client=stripe):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self._stripe = client

    def _line_item(self, resource) -> dict:
        if resource.stripe_price_id:
            return {'price': resource.stripe_price_id, 'quantity': 1}

        return {
            'price_data': {
                'currency': (resource.currency or config.DEFAULT_CURRENCY).lower(),
                'unit_amount': int(round((resource.price or 0) * 100)),
                'product_data': {'name': resource.title},
            },
            'quantity': 1,
        }

    def create_checkout_session(self, user: User, resource, success_url: str, cancel_url: str) -> CheckoutSession:
        resource_type = resource_type_of(resource)
        metadata = {
            'user_id': str(user.id),
            'resource_type': resource_type,
            'resource_id': str(resource.id),
            'resource_title': resource.title or '',
            'resource_slug': getattr(resource, 'slug', None) or '',
        }

        try:
            session = self._stripe.checkout.Session.create(
                api_key=self.api_key,
                mode='payment',
                payment_method_types=['card'],
                line_items=[self._line_item(resource)],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=user.email,
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            logger.exception('Stripe checkout session creation failed for %s %s', resource_type, resource.id)
            raise GatewayError('Failed to create checkout session') from exc

        logger.info('Created checkout session %s for user %s on %s %s', session.id, user.id, resource_type, resource.id)
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_session(self, session_id: str) -> SessionStatus:
        try:
            session = self._stripe.checkout.Session.retrieve(
                session_id,
                api_key=self.api_key,
                expand=['payment_intent'],
            )
        except stripe.StripeError as exc:
            logger.exception('Stripe checkout session lookup failed for %s', session_id)
            raise GatewayError('Failed to verify session') from exc

        return _to_session_status(session)

    def construct_event(self, payload: bytes, signature: str) -> GatewayEvent:
        if not self.webhook_secret:
            raise GatewayError('Webhook not configured')

        try:
            event = self._stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise WebhookSignatureError(str(exc)) from exc

        event_type = event['type']
        event_object = event['data']['object']
        session = _to_session_status(event_object) if event_type.startswith('checkout.session.') else None

        return GatewayEvent(
            id=event['id'],
            type=event_type,
            session=session,
            details={
                'object_id': _field(event_object, 'id'),
                'last_payment_error': _field(event_object, 'last_payment_error'),
            },
        )


def get_payment_gateway() -> StripeGateway:
    if not config.STRIPE_SECRET_KEY:
        raise GatewayError('Stripe configuration missing')
    return StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET)


def get_webhook_gateway() -> StripeGateway:
    # Signature checks only need the webhook secret, not an API key.
    return StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET)


def get_optional_payment_gateway() -> StripeGateway | None:
    if not config.STRIPE_SECRET_KEY:
        return None
    return StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET)
