import logging
import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from codebyte.core.errors import InvalidRequestError, NotFoundError, UnknownError
from codebyte.database import get_db
from codebyte.models.course import COURSE_LEVELS, Course, CourseSection
from codebyte.schemas import CourseResponse, CourseSectionResponse

router = APIRouter(tags=['courses'])

logger = logging.getLogger(__name__)

RELATED_COURSES_LIMIT = 3


def get_published_course(course_id: int, db: Session) -> Course | None:
    return (
        db.query(Course)
        .options(joinedload(Course.category))
        .filter(Course.id == course_id, Course.is_published.is_(True))
        .first()
    )


@router.get('')
def list_courses(
    limit: int = Query(default=6, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    category_id: int | None = Query(default=None),
    level: str | None = Query(default=None),
    featured: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    if level is not None:
        level = level.strip().upper()
        if level not in COURSE_LEVELS:
            raise InvalidRequestError('Invalid course level')

    try:
        query = db.query(Course).options(joinedload(Course.category)).filter(Course.is_published.is_(True))
        if category_id is not None:
            query = query.filter(Course.category_id == category_id)
        if level is not None:
            query = query.filter(Course.level == level)

        total = query.count()

        if featured:
            query = query.order_by(Course.rating.desc(), Course.student_count.desc(), Course.id.desc())
        else:
            query = query.order_by(Course.created_at.desc(), Course.id.desc())

        courses = query.offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch courses')
        raise UnknownError('Failed to fetch courses') from exc

    return {
        'success': True,
        'data': [CourseResponse.model_validate(course) for course in courses],
        'pagination': {
            'total': total,
            'page': page,
            'pages': math.ceil(total / limit),
            'limit': limit,
        },
    }


@router.get('/{course_id}')
def get_course(course_id: str, db: Session = Depends(get_db)):
    if not course_id.isdigit():
        raise InvalidRequestError('Invalid course ID')

    try:
        course = db.query(Course).options(joinedload(Course.category)).filter(Course.id == int(course_id)).first()
        if course is None:
            raise NotFoundError('Course not found')
        if not course.is_published:
            raise NotFoundError('Course is not available')

        sections = (
            db.query(CourseSection)
            .filter(CourseSection.course_id == course.id)
            .order_by(CourseSection.order.asc())
            .all()
        )

        related_courses = (
            db.query(Course)
            .options(joinedload(Course.category))
            .filter(
                Course.category_id == course.category_id,
                Course.id != course.id,
                Course.is_published.is_(True),
            )
            .order_by(Course.rating.desc())
            .limit(RELATED_COURSES_LIMIT)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception('Failed to fetch course %s', course_id)
        raise UnknownError('Failed to fetch course details') from exc

    return {
        'success': True,
        'data': {
            'course': CourseResponse.model_validate(course),
            'sections': [CourseSectionResponse.model_validate(section) for section in sections],
            'related_courses': [CourseResponse.model_validate(related) for related in related_courses],
        },
    }
