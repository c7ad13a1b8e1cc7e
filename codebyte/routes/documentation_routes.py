import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from codebyte.auth.dependencies import get_optional_user
from codebyte.core.errors import GatewayError, NotFoundError, UnknownError
from codebyte.database import get_db
from codebyte.models.category import Category
from codebyte.models.documentation import Documentation
from codebyte.models.user import User
from codebyte.payments.access import apply_gate, decide_access, gated_resource, listing_decision
from codebyte.payments.gateway import StripeGateway, get_optional_payment_gateway
from codebyte.schemas import CategoryRef, DocumentationSectionSummary

router = APIRouter(tags=['documentation'])

logger = logging.getLogger(__name__)


def serialize_documentation(doc: Documentation, include_section_content: bool = True) -> dict:
    sections = [
        DocumentationSectionSummary.model_validate(section).model_dump()
        for section in sorted(doc.sections, key=lambda section: (section.order or 0, section.id))
        if section.is_published
    ]
    if not include_section_content:
        for section in sections:
            section['content'] = None

    return {
        'id': doc.id,
        'title': doc.title,
        'slug': doc.slug,
        'description': doc.description,
        'content': doc.content,
        'category': CategoryRef.model_validate(doc.category).model_dump() if doc.category else None,
        'read_time': doc.read_time,
        'key_features': list(doc.key_features or []),
        'code_examples': list(doc.code_examples or []),
        'sections': sections,
        'pro_tip': doc.pro_tip,
        'is_published': doc.is_published,
        'price': doc.price,
        'currency': doc.currency,
        'parent_id': doc.parent_id,
        'order': doc.order or 0,
        'created_at': doc.created_at,
        'updated_at': doc.updated_at,
    }


def select_fields(payload: dict, fields: str | None) -> dict:
    if not fields:
        return payload
    wanted = {field.strip() for field in fields.split(',') if field.strip()}
    wanted.add('id')
    return {key: value for key, value in payload.items() if key in wanted}


def published_documentation(db: Session):
    return (
        db.query(Documentation)
        .options(joinedload(Documentation.category), selectinload(Documentation.sections))
        .filter(Documentation.is_published.is_(True))
    )


def listing_payload(doc: Documentation) -> dict:
    payload = serialize_documentation(doc, include_section_content=False)
    return apply_gate(payload, listing_decision(gated_resource(doc)))


def find_published_documentation(identifier: str, db: Session) -> Documentation | None:
    query = published_documentation(db)
    if identifier.isdigit():
        return query.filter(or_(Documentation.slug == identifier, Documentation.id == int(identifier))).first()
    return query.filter(Documentation.slug == identifier.strip().lower()).first()


@router.get('')
def list_documentation(fields: str | None = Query(default=None), db: Session = Depends(get_db)):
    try:
        docs = published_documentation(db).order_by(Documentation.created_at.desc(), Documentation.id.desc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch documentation')
        raise UnknownError('Failed to fetch documentation') from exc

    return {
        'success': True,
        'data': [select_fields(listing_payload(doc), fields) for doc in docs],
    }


@router.get('/category/{category}')
def list_documentation_by_category(category: str, db: Session = Depends(get_db)):
    try:
        query = published_documentation(db)
        if category.isdigit():
            query = query.filter(Documentation.category_id == int(category))
        else:
            query = query.join(Documentation.category).filter(Category.slug == category.strip().lower())
        docs = query.order_by(Documentation.created_at.desc(), Documentation.id.desc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch documentation for category %s', category)
        raise UnknownError('Failed to fetch documentation') from exc

    return {
        'success': True,
        'data': [listing_payload(doc) for doc in docs],
    }


@router.get('/{identifier}')
def get_documentation(
    identifier: str,
    session_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
    gateway: StripeGateway | None = Depends(get_optional_payment_gateway),
):
    try:
        doc = find_published_documentation(identifier, db)
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch documentation %s', identifier)
        raise UnknownError('Failed to fetch documentation') from exc

    if doc is None:
        raise NotFoundError('Documentation not found')

    verified_session = None
    if session_id and gateway is not None:
        try:
            verified_session = gateway.retrieve_session(session_id)
        except GatewayError:
            logger.warning('Could not verify checkout session %s for documentation %s', session_id, doc.id)

    try:
        decision = decide_access(gated_resource(doc), current_user, db, verified_session=verified_session)
    except SQLAlchemyError as exc:
        logger.exception('Failed to check purchase state for documentation %s', doc.id)
        raise UnknownError('Failed to fetch documentation') from exc

    return {'success': True, 'data': apply_gate(serialize_documentation(doc), decision)}
