"""Course and course section model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from codebyte.database import Base

COURSE_LEVELS = ('BEGINNER', 'INTERMEDIATE', 'ADVANCED', 'BEGINNER_TO_ADVANCE')


class Course(Base):
    """A priced, publishable course belonging to one category."""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    level = Column(String, default='BEGINNER')
    rating = Column(Float, default=0)
    student_count = Column(Integer, default=0)
    duration = Column(String)
    instructor = Column(String)
    bg_color = Column(String)
    price = Column(Float)
    currency = Column(String, default='usd')
    stripe_price_id = Column(String)
    is_premium = Column(Boolean, default=False)
    is_published = Column(Boolean, default=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    category = relationship("Category")
    sections = relationship(
        "CourseSection",
        back_populates="course",
        order_by="CourseSection.order",
        cascade="all, delete-orphan",
    )


class CourseSection(Base):
    """An ordered chapter of a course."""
    __tablename__ = "course_sections"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    course = relationship("Course", back_populates="sections")
