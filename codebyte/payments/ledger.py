"""Purchase ledger: who has bought which documentation or course."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from codebyte.core import config
from codebyte.models.purchase import RESOURCE_TYPES, Purchase

logger = logging.getLogger(__name__)

_RESOURCE_COLUMNS = {
    'documentation': Purchase.documentation_id,
    'course': Purchase.course_id,
}

_CONFLICT_FREE_INSERTS = {
    'postgresql': postgresql_insert,
    'sqlite': sqlite_insert,
}


def _resource_column(resource_type: str):
    if resource_type not in RESOURCE_TYPES:
        raise ValueError(f'Unknown resource type: {resource_type}')
    return _RESOURCE_COLUMNS[resource_type]


def find_purchase(db: Session, user_id: int, resource_type: str, resource_id: int) -> Purchase | None:
    return db.scalars(
        select(Purchase).where(
            Purchase.user_id == user_id,
            _resource_column(resource_type) == resource_id,
        )
    ).first()


def find_completed_purchase(db: Session, user_id: int, resource_type: str, resource_id: int) -> Purchase | None:
    purchase = find_purchase(db, user_id, resource_type, resource_id)
    if purchase is not None and purchase.status == 'completed':
        return purchase
    return None


def has_purchased(db: Session, user_id: int, resource_type: str, resource_id: int) -> bool:
    return find_completed_purchase(db, user_id, resource_type, resource_id) is not None


def list_purchases(db: Session, user_id: int) -> list[Purchase]:
    return list(
        db.scalars(
            select(Purchase)
            .where(Purchase.user_id == user_id, Purchase.status == 'completed')
            .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        )
    )


def _insert_if_absent(db: Session, values: dict) -> int | None:
    """Insert a purchase row and return its id, or ``None`` if the pair already exists."""
    dialect = db.get_bind().dialect.name
    dialect_insert = _CONFLICT_FREE_INSERTS.get(dialect)

    if dialect_insert is not None:
        statement = dialect_insert(Purchase).values(**values).on_conflict_do_nothing().returning(Purchase.id)
        return db.execute(statement).scalar()

    # No portable ON CONFLICT clause; let a savepoint absorb the duplicate.
    purchase = Purchase(**values)
    try:
        with db.begin_nested():
            db.add(purchase)
    except IntegrityError:
        logger.info('Purchase for user %s already present', values['user_id'])
        return None
    return purchase.id


def record_purchase(
    db: Session,
    user_id: int,
    resource_type: str,
    resource_id: int,
    session_id: str | None,
    amount: float,
    currency: str | None,
    payment_intent_id: str | None = None,
) -> tuple[Purchase, bool]:
    """Store a completed purchase unless one already exists for the pair.

    Returns ``(purchase, created)``. A caller that loses a race against a
    concurrent insert for the same user and resource receives the winner's row
    with ``created`` false. A pending or failed row is completed in place; a
    refunded row is only completed again by a new checkout session, so replaying
    the refunded session leaves it refunded.
    """
    resource_column = _resource_column(resource_type)

    existing = find_purchase(db, user_id, resource_type, resource_id)
    if existing is not None:
        if existing.status == 'completed':
            return existing, False
        if existing.status == 'refunded' and (not session_id or session_id == existing.stripe_session_id):
            # A refunded session still reads as paid at the gateway.
            logger.warning('Ignoring replayed session %s for refunded purchase %s', session_id, existing.id)
            return existing, False

        previous_status = existing.status
        existing.status = 'completed'
        existing.amount = amount
        existing.currency = (currency or config.DEFAULT_CURRENCY).lower()
        existing.stripe_session_id = session_id or existing.stripe_session_id
        existing.stripe_payment_intent_id = payment_intent_id or existing.stripe_payment_intent_id
        existing.purchase_date = datetime.now()
        db.commit()
        db.refresh(existing)
        logger.info('Completed %s purchase %s for user %s', previous_status, existing.id, user_id)
        return existing, True

    values = {
        'user_id': user_id,
        resource_column.key: resource_id,
        'resource_type': resource_type,
        'amount': amount,
        'currency': (currency or config.DEFAULT_CURRENCY).lower(),
        'stripe_session_id': session_id,
        'stripe_payment_intent_id': payment_intent_id,
        'status': 'completed',
        'purchase_date': datetime.now(),
    }
    inserted_id = _insert_if_absent(db, values)
    db.commit()

    purchase = find_purchase(db, user_id, resource_type, resource_id)
    created = inserted_id is not None
    if created:
        logger.info('Recorded purchase %s: user %s bought %s %s', purchase.id, user_id, resource_type, resource_id)
    return purchase, created
