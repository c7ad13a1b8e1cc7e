import logging

from sqlalchemy.orm import Session

from codebyte.models.purchase import RESOURCE_TYPES
from codebyte.models.user import User
from codebyte.payments import ledger
from codebyte.payments.gateway import GatewayEvent, SessionStatus

logger = logging.getLogger(__name__)


def reconcile_checkout(session: SessionStatus, db: Session) -> str:
    """Mirror a completed checkout into the ledger; safe to repeat."""
    if not session.is_paid:
        logger.info('Checkout session %s completed without payment (%s)', session.id, session.payment_status)
        return 'unpaid'

    user_id = session.metadata.get('user_id')
    resource_type = session.metadata.get('resource_type')
    resource_id = session.metadata.get('resource_id')
    if not (user_id and str(user_id).isdigit() and resource_type in RESOURCE_TYPES and str(resource_id).isdigit()):
        logger.warning('Checkout session %s carries no purchasable resource: %s', session.id, session.metadata)
        return 'skipped'

    if db.get(User, int(user_id)) is None:
        logger.warning('Checkout session %s names unknown user %s', session.id, user_id)
        return 'skipped'

    purchase, created = ledger.record_purchase(
        db,
        user_id=int(user_id),
        resource_type=resource_type,
        resource_id=int(resource_id),
        session_id=session.id,
        amount=session.amount,
        currency=session.currency,
        payment_intent_id=session.payment_intent_id,
    )
    if purchase.status != 'completed':
        logger.warning('Session %s names purchase %s which is %s', session.id, purchase.id, purchase.status)
        return purchase.status
    logger.info(
        'Webhook reconciled session %s into purchase %s (%s)',
        session.id,
        purchase.id,
        'created' if created else 'already recorded',
    )
    return 'recorded' if created else 'duplicate'


def handle_event(event: GatewayEvent, db: Session) -> str:
    if event.type == 'checkout.session.completed' and event.session is not None:
        logger.info(
            'Checkout completed: session=%s resource=%s/%s email=%s amount=%s',
            event.session.id,
            event.session.metadata.get('resource_type'),
            event.session.metadata.get('resource_id'),
            event.session.customer_email,
            event.session.amount_total,
        )
        return reconcile_checkout(event.session, db)

    if event.type == 'payment_intent.payment_failed':
        logger.warning(
            'Payment failed: payment_intent=%s error=%s',
            event.details.get('object_id'),
            event.details.get('last_payment_error'),
        )
        return 'logged'

    logger.info('Ignoring webhook event %s of type %s', event.id, event.type)
    return 'ignored'
