import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codebyte.auth.dependencies import get_current_user
from codebyte.core import config
from codebyte.core.errors import ForbiddenError, GatewayError, InvalidRequestError, NotFoundError, UnknownError
from codebyte.database import get_db
from codebyte.models.course import Course
from codebyte.models.documentation import Documentation
from codebyte.models.purchase import RESOURCE_TYPES
from codebyte.models.user import User
from codebyte.payments import ledger
from codebyte.payments.gateway import (
    CHECKOUT_SESSION_PLACEHOLDER,
    StripeGateway,
    WebhookSignatureError,
    get_payment_gateway,
    get_webhook_gateway,
    resource_type_of,
)
from codebyte.payments.webhooks import handle_event
from codebyte.schemas import PurchaseResponse

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)


class CreateCheckoutSessionRequest(BaseModel):
    documentation_id: int | None = None
    documentation_slug: str | None = None
    course_id: int | None = None
    success_url: str | None = None
    cancel_url: str | None = None

    @field_validator('documentation_slug')
    @classmethod
    def normalize_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None


class PaymentSuccessRequest(BaseModel):
    session_id: str = ''

    @field_validator('session_id')
    @classmethod
    def strip_session_id(cls, value: str) -> str:
        return value.strip()


def find_purchasable_resource(data: CreateCheckoutSessionRequest, db: Session) -> Documentation | Course:
    if data.documentation_id is not None or data.documentation_slug:
        query = db.query(Documentation).filter(Documentation.is_published.is_(True))
        if data.documentation_id is not None:
            resource = query.filter(Documentation.id == data.documentation_id).first()
        else:
            resource = query.filter(Documentation.slug == data.documentation_slug).first()
        if resource is None:
            raise NotFoundError('Documentation not found')
        return resource

    if data.course_id is not None:
        resource = db.query(Course).filter(Course.id == data.course_id, Course.is_published.is_(True)).first()
        if resource is None:
            raise NotFoundError('Course not found')
        return resource

    raise InvalidRequestError('Missing resource identifiers (document or course)')


def default_redirect_urls(resource) -> tuple[str, str]:
    if isinstance(resource, Documentation):
        resource_path = f'{config.APP_URL}/docs/{quote(resource.slug)}'
    else:
        resource_path = f'{config.APP_URL}/courses/{resource.id}'
    return f'{resource_path}?session_id={CHECKOUT_SESSION_PLACEHOLDER}', resource_path


@router.post('/create-checkout-session')
def create_checkout_session(
    data: CreateCheckoutSessionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    try:
        resource = find_purchasable_resource(data, db)
        resource_type = resource_type_of(resource)
        already_purchased = ledger.has_purchased(db, current_user.id, resource_type, resource.id)
    except SQLAlchemyError as exc:
        logger.exception('Failed to load resource for checkout')
        raise UnknownError('Failed to create checkout session') from exc

    if not resource.price or resource.price <= 0:
        raise InvalidRequestError('This resource is free and does not require checkout')
    if already_purchased:
        raise InvalidRequestError('Resource already purchased')

    success_url, cancel_url = default_redirect_urls(resource)
    session = gateway.create_checkout_session(
        current_user,
        resource,
        success_url=data.success_url or success_url,
        cancel_url=data.cancel_url or cancel_url,
    )

    return {'success': True, 'data': {'session_id': session.id, 'url': session.url}}


@router.post('/success')
def payment_success(
    data: PaymentSuccessRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    if not data.session_id:
        raise InvalidRequestError('Session ID is required')

    session = gateway.retrieve_session(data.session_id)
    if not session.is_paid:
        raise InvalidRequestError('Payment not completed')

    resource_type = session.metadata.get('resource_type')
    resource_id = str(session.metadata.get('resource_id') or '')
    if resource_type not in RESOURCE_TYPES or not resource_id.isdigit():
        raise InvalidRequestError('No purchasable resource found in session')

    if str(session.metadata.get('user_id') or '') != str(current_user.id):
        raise ForbiddenError('Checkout session belongs to another user')

    try:
        purchase, created = ledger.record_purchase(
            db,
            user_id=current_user.id,
            resource_type=resource_type,
            resource_id=int(resource_id),
            session_id=session.id,
            amount=session.amount,
            currency=session.currency,
            payment_intent_id=session.payment_intent_id,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to record purchase for session %s', session.id)
        raise UnknownError() from exc

    if purchase.status != 'completed':
        raise InvalidRequestError('Purchase is no longer active', f'status: {purchase.status}')

    return {
        'success': True,
        'message': 'Purchase recorded successfully' if created else 'Resource already purchased',
        'data': {'purchase': PurchaseResponse.model_validate(purchase)},
    }


@router.get('/verify-session')
def verify_session(
    session_id: str = '',
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    if not session_id.strip():
        raise InvalidRequestError('Session ID is required')

    session = gateway.retrieve_session(session_id.strip())
    if not session.is_paid:
        raise InvalidRequestError('Payment not completed', f'payment_status: {session.payment_status}')

    return {
        'success': True,
        'data': {
            'session': {
                'id': session.id,
                'customer_email': session.customer_email,
                'payment_status': session.payment_status,
                'metadata': session.metadata,
                'amount_total': session.amount_total,
                'currency': session.currency,
            },
        },
    }


@router.post('/webhook')
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_webhook_gateway),
):
    if not gateway.webhook_secret:
        logger.error('Webhook secret not configured')
        raise GatewayError('Webhook not configured')

    if not stripe_signature:
        raise InvalidRequestError('No signature found')

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except WebhookSignatureError as exc:
        logger.warning('Webhook signature verification failed: %s', exc)
        raise InvalidRequestError('Invalid signature') from exc

    try:
        outcome = handle_event(event, db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Webhook handler failed for event %s', event.id)
        raise UnknownError('Webhook handler failed') from exc

    return {'success': True, 'data': {'received': True, 'outcome': outcome}}
