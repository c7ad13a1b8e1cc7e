"""Category model definitions."""

import re
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from codebyte.database import Base

DEFAULT_BG_COLOR = '#3B82F6'
DEFAULT_ICON = 'BookOpen'


def slugify(title: str) -> str:
    slug = title.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'\s+', '-', slug)
    return re.sub(r'-+', '-', slug)


class Category(Base):
    """Top-level taxonomy node grouping courses and documentation."""
    __tablename__ = "categories"
    __table_args__ = (
        Index('idx_categories_order_active', 'order', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), unique=True, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(String(500))
    content = Column(Text)
    bg_color = Column(String, default=DEFAULT_BG_COLOR)
    icon = Column(String, default=DEFAULT_ICON)
    order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
