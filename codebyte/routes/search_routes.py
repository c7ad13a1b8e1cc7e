import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased, joinedload

from codebyte.core.errors import InvalidRequestError, UnknownError
from codebyte.database import get_db
from codebyte.models.category import Category
from codebyte.models.course import Course
from codebyte.models.documentation import Documentation
from codebyte.schemas import CategoryRef

router = APIRouter(tags=['search'])

logger = logging.getLogger(__name__)

SEARCH_TYPES = ('course', 'documentation', 'category')
MIN_SUGGESTION_QUERY_LENGTH = 2
CATEGORY_SUGGESTIONS = 3
COURSE_SUGGESTIONS = 4
DOCUMENTATION_SUGGESTIONS = 3
KEYWORD_SUGGESTIONS = 3
POPULAR_KEYWORDS = (
    'JavaScript', 'Python', 'React', 'Node.js', 'TypeScript',
    'MongoDB', 'PostgreSQL', 'Docker', 'AWS', 'Machine Learning',
    'Data Structures', 'Algorithms', 'System Design', 'API Design',
    'Frontend', 'Backend', 'Full Stack', 'DevOps', 'Testing',
)


class SearchResult(BaseModel):
    id: int
    title: str
    description: str | None = None
    type: str
    slug: str
    category: CategoryRef | None = None
    rating: float | None = None
    student_count: int | None = None
    level: str | None = None
    bg_color: str | None = None
    icon: str | None = None


class SearchSuggestion(BaseModel):
    text: str
    type: str


def escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def category_ref(category: Category | None) -> CategoryRef | None:
    return CategoryRef.model_validate(category) if category is not None else None


def search_courses(db: Session, pattern: str, limit: int) -> list[SearchResult]:
    courses = (
        db.query(Course)
        .options(joinedload(Course.category))
        .filter(
            Course.is_published.is_(True),
            or_(Course.title.ilike(pattern, escape='\\'), Course.description.ilike(pattern, escape='\\')),
        )
        .order_by(Course.rating.desc(), Course.student_count.desc())
        .limit(limit)
        .all()
    )
    return [
        SearchResult(
            id=course.id,
            title=course.title,
            description=course.description,
            type='course',
            slug=str(course.id),
            category=category_ref(course.category),
            rating=course.rating,
            student_count=course.student_count,
            level=course.level,
        )
        for course in courses
    ]


def is_free(model):
    return or_(model.price.is_(None), model.price <= 0)


def search_documentation(db: Session, pattern: str, limit: int) -> list[SearchResult]:
    # Bodies of priced guides, and of their sections, are not searchable.
    parent = aliased(Documentation)
    docs = (
        db.query(Documentation)
        .options(joinedload(Documentation.category))
        .outerjoin(parent, Documentation.parent_id == parent.id)
        .filter(
            Documentation.is_published.is_(True),
            or_(
                Documentation.title.ilike(pattern, escape='\\'),
                Documentation.description.ilike(pattern, escape='\\'),
                and_(
                    is_free(Documentation),
                    or_(parent.id.is_(None), is_free(parent)),
                    Documentation.content.ilike(pattern, escape='\\'),
                ),
            ),
        )
        .order_by(Documentation.created_at.desc(), Documentation.id.desc())
        .limit(limit)
        .all()
    )
    return [
        SearchResult(
            id=doc.id,
            title=doc.title,
            description=doc.description,
            type='documentation',
            slug=doc.slug,
            category=category_ref(doc.category),
        )
        for doc in docs
    ]


def search_categories(db: Session, pattern: str, limit: int) -> list[SearchResult]:
    categories = (
        db.query(Category)
        .filter(
            Category.is_active.is_(True),
            or_(Category.title.ilike(pattern, escape='\\'), Category.description.ilike(pattern, escape='\\')),
        )
        .order_by(Category.order.asc(), Category.created_at.desc())
        .limit(limit)
        .all()
    )
    return [
        SearchResult(
            id=category.id,
            title=category.title,
            description=category.description,
            type='category',
            slug=category.slug,
            bg_color=category.bg_color,
            icon=category.icon,
        )
        for category in categories
    ]


@router.get('')
def search(
    q: str = Query(default=''),
    limit: int = Query(default=10, ge=1, le=50),
    type: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if type is not None and type not in SEARCH_TYPES:
        raise InvalidRequestError('Invalid search type')

    results = {'courses': [], 'documentation': [], 'categories': []}
    term = q.strip()
    if not term:
        return {'success': True, 'data': {**results, 'total': 0}}

    pattern = f'%{escape_like(term)}%'
    try:
        if type in (None, 'course'):
            results['courses'] = search_courses(db, pattern, limit)
        if type in (None, 'documentation'):
            results['documentation'] = search_documentation(db, pattern, limit)
        if type in (None, 'category'):
            results['categories'] = search_categories(db, pattern, limit)
    except SQLAlchemyError as exc:
        logger.exception('Search failed for %r', term)
        raise UnknownError('Search failed') from exc

    total = sum(len(group) for group in results.values())
    return {'success': True, 'data': {**results, 'total': total}}


@router.get('/suggestions')
def search_suggestions(
    q: str = Query(default=''),
    limit: int = Query(default=8, ge=1, le=50),
    db: Session = Depends(get_db),
):
    term = q.strip()
    if len(term) < MIN_SUGGESTION_QUERY_LENGTH:
        return {'success': True, 'data': []}

    pattern = f'{escape_like(term)}%'
    suggestions: list[SearchSuggestion] = []

    try:
        for (title,) in (
            db.query(Category.title)
            .filter(Category.title.ilike(pattern, escape='\\'), Category.is_active.is_(True))
            .limit(CATEGORY_SUGGESTIONS)
        ):
            suggestions.append(SearchSuggestion(text=title, type='category'))

        for (title,) in (
            db.query(Course.title)
            .filter(Course.title.ilike(pattern, escape='\\'), Course.is_published.is_(True))
            .limit(COURSE_SUGGESTIONS)
        ):
            suggestions.append(SearchSuggestion(text=title, type='course'))

        for (title,) in (
            db.query(Documentation.title)
            .filter(Documentation.title.ilike(pattern, escape='\\'), Documentation.is_published.is_(True))
            .limit(DOCUMENTATION_SUGGESTIONS)
        ):
            suggestions.append(SearchSuggestion(text=title, type='documentation'))
    except SQLAlchemyError as exc:
        logger.exception('Suggestions failed for %r', term)
        raise UnknownError('Failed to fetch suggestions') from exc

    lowered = term.lower()
    keywords = [keyword for keyword in POPULAR_KEYWORDS if keyword.lower().startswith(lowered)]
    for keyword in keywords[:KEYWORD_SUGGESTIONS]:
        suggestions.append(SearchSuggestion(text=keyword, type='keyword'))

    seen: set[str] = set()
    unique: list[SearchSuggestion] = []
    for suggestion in suggestions:
        key = suggestion.text.lower()
        if key not in seen:
            seen.add(key)
            unique.append(suggestion)

    return {'success': True, 'data': unique[:limit]}
