import logging
import math
import re

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from codebyte.auth.dependencies import require_role
from codebyte.core.errors import ConflictError, InvalidRequestError, NotFoundError, UnknownError
from codebyte.database import get_db
from codebyte.models.category import Category, slugify
from codebyte.models.user import User
from codebyte.schemas import CategoryResponse

router = APIRouter(tags=['categories'])

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
SLUG_PATTERN = re.compile(r'^[a-z0-9-]+$')
HEX_COLOR_PATTERN = re.compile(r'^#([0-9a-f]{3}){1,2}$', re.IGNORECASE)


class CategoryFields(BaseModel):
    title: str | None = None
    slug: str | None = None
    description: str | None = None
    content: str | None = None
    bg_color: str | None = None
    icon: str | None = None
    order: int | None = None
    is_active: bool | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_TITLE_LENGTH:
            raise ValueError(f'Title cannot be more than {MAX_TITLE_LENGTH} characters')
        return normalized

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized and not SLUG_PATTERN.match(normalized):
            raise ValueError('Slug can only contain lowercase letters, numbers, and hyphens')
        return normalized or None

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f'Description cannot be more than {MAX_DESCRIPTION_LENGTH} characters')
        return normalized

    @field_validator('bg_color')
    @classmethod
    def validate_bg_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not HEX_COLOR_PATTERN.match(value.strip()):
            raise ValueError('Please provide a valid hex color')
        return value.strip()


class CreateCategoryRequest(CategoryFields):
    pass


class UpdateCategoryRequest(CategoryFields):
    pass


def find_category(identifier: str, db: Session) -> Category | None:
    query = db.query(Category)
    if identifier.isdigit():
        return query.filter(or_(Category.id == int(identifier), Category.slug == identifier)).first()
    return query.filter(Category.slug == identifier.lower()).first()


def parse_category_id(category_id: str) -> int:
    if not category_id.isdigit():
        raise InvalidRequestError('Invalid ID', 'Invalid category ID provided')
    return int(category_id)


def conflicting_field(category: Category, db: Session) -> str | None:
    with db.no_autoflush:
        for field in ('title', 'slug'):
            query = db.query(Category).filter(getattr(Category, field) == getattr(category, field))
            if category.id is not None:
                query = query.filter(Category.id != category.id)
            if query.first() is not None:
                return field
    return None


def save_category(category: Category, db: Session) -> Category:
    field = conflicting_field(category, db)
    if field is not None:
        db.rollback()
        raise ConflictError(field)

    try:
        db.add(category)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # A concurrent writer took the title or slug between the check and the commit.
        raise ConflictError('title', 'Title or slug already exists') from exc

    db.refresh(category)
    return category


@router.get('')
def list_categories(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = Query(default=''),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Category)
        term = search.strip()
        if term:
            pattern = f'%{term}%'
            query = query.filter(or_(Category.title.ilike(pattern), Category.description.ilike(pattern)))
        if active_only:
            query = query.filter(Category.is_active.is_(True))

        total = query.count()
        categories = (
            query.order_by(Category.order.asc(), Category.created_at.desc(), Category.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch categories')
        raise UnknownError('Failed to fetch categories') from exc

    pages = math.ceil(total / limit)
    return {
        'success': True,
        'data': [CategoryResponse.model_validate(category) for category in categories],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': pages,
            'has_next': page < pages,
            'has_prev': page > 1,
        },
    }


@router.post('', status_code=status.HTTP_201_CREATED)
def create_category(
    data: CreateCategoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('ADMIN')),
):
    if not data.title:
        raise InvalidRequestError('Validation failed', 'Title is required')

    slug = data.slug or slugify(data.title)
    if not slug:
        raise InvalidRequestError('Validation failed', 'Slug could not be derived from the title')

    category = Category(
        title=data.title,
        slug=slug,
        description=data.description,
        content=data.content,
        bg_color=data.bg_color,
        icon=data.icon,
        order=data.order if data.order is not None else 0,
        is_active=data.is_active if data.is_active is not None else True,
    )

    try:
        save_category(category, db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create category')
        raise UnknownError('Failed to create category') from exc

    logger.info('User %s created category %s', current_user.id, category.slug)
    return {
        'success': True,
        'data': CategoryResponse.model_validate(category),
        'message': 'Category created successfully',
    }


@router.get('/{category_id}')
def get_category(category_id: str, db: Session = Depends(get_db)):
    try:
        category = find_category(category_id, db)
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch category %s', category_id)
        raise UnknownError('Failed to fetch category') from exc

    if category is None:
        raise NotFoundError('Not found', 'Category not found')

    return {'success': True, 'data': CategoryResponse.model_validate(category)}


@router.put('/{category_id}')
def update_category(
    category_id: str,
    data: UpdateCategoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('ADMIN')),
):
    identifier = parse_category_id(category_id)
    changes = data.model_dump(exclude_unset=True)
    if 'title' in changes and not changes['title']:
        raise InvalidRequestError('Validation failed', 'Title is required')

    try:
        category = db.get(Category, identifier)
        if category is None:
            raise NotFoundError('Not found', 'Category not found')

        for field, value in changes.items():
            if field == 'slug' and not value:
                continue
            setattr(category, field, value)

        save_category(category, db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update category %s', category_id)
        raise UnknownError('Failed to update category') from exc

    logger.info('User %s updated category %s', current_user.id, category.id)
    return {
        'success': True,
        'data': CategoryResponse.model_validate(category),
        'message': 'Category updated successfully',
    }


@router.delete('/{category_id}')
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('ADMIN')),
):
    identifier = parse_category_id(category_id)

    try:
        category = db.get(Category, identifier)
        if category is None:
            raise NotFoundError('Not found', 'Category not found')

        db.delete(category)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidRequestError('Validation failed', 'Category is still referenced by courses or documentation') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to delete category %s', category_id)
        raise UnknownError('Failed to delete category') from exc

    logger.info('User %s deleted category %s', current_user.id, identifier)
    return {
        'success': True,
        'message': 'Category deleted successfully',
        'data': {'deleted_id': identifier},
    }
