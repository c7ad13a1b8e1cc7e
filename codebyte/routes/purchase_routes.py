import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codebyte.auth.dependencies import get_current_user
from codebyte.core.errors import InvalidRequestError, UnknownError
from codebyte.database import get_db
from codebyte.models.purchase import Purchase
from codebyte.models.user import User
from codebyte.payments import ledger
from codebyte.schemas import PurchaseResponse

router = APIRouter(tags=['purchases'])

logger = logging.getLogger(__name__)


class PurchaseLookupRequest(BaseModel):
    documentation_id: int | None = None
    course_id: int | None = None


def purchase_summary(purchase: Purchase) -> dict:
    summary = PurchaseResponse.model_validate(purchase).model_dump()
    if purchase.documentation is not None:
        doc = purchase.documentation
        summary['documentation'] = {
            'id': doc.id,
            'title': doc.title,
            'slug': doc.slug,
            'description': doc.description,
            'price': doc.price,
            'category': {'title': doc.category.title} if doc.category else None,
        }
    if purchase.course is not None:
        summary['course'] = {'id': purchase.course.id, 'title': purchase.course.title}
    return summary


@router.get('/purchases')
def list_user_purchases(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        purchases = ledger.list_purchases(db, current_user.id)
        payload = [purchase_summary(purchase) for purchase in purchases]
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch purchases for user %s', current_user.id)
        raise UnknownError() from exc

    return {
        'success': True,
        'data': {
            'purchases': payload,
            'purchased_documentation_ids': [p.documentation_id for p in purchases if p.documentation_id],
            'purchased_course_ids': [p.course_id for p in purchases if p.course_id],
        },
    }


@router.post('/purchases')
def check_user_purchase(
    data: PurchaseLookupRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if data.documentation_id is not None:
        resource_type, resource_id = 'documentation', data.documentation_id
    elif data.course_id is not None:
        resource_type, resource_id = 'course', data.course_id
    else:
        raise InvalidRequestError('documentation_id or course_id is required')

    try:
        purchase = ledger.find_completed_purchase(db, current_user.id, resource_type, resource_id)
    except SQLAlchemyError as exc:
        logger.exception('Failed to check purchase for user %s', current_user.id)
        raise UnknownError() from exc

    return {
        'success': True,
        'data': {
            'has_purchased': purchase is not None,
            'purchase': PurchaseResponse.model_validate(purchase) if purchase else None,
            'type': resource_type,
        },
    }
