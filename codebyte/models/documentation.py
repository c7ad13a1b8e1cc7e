"""Documentation model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from codebyte.database import Base

SUPPORTED_CURRENCIES = ('usd', 'eur', 'gbp', 'cad', 'aud')


class Documentation(Base):
    """A guide, or a section of a guide when ``parent_id`` is set."""
    __tablename__ = "documentation"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text)
    content = Column(Text, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    read_time = Column(String)
    key_features = Column(JSON, default=list)
    code_examples = Column(JSON, default=list)  # [{title, code, description}]
    pro_tip = Column(Text)
    is_published = Column(Boolean, default=True)
    price = Column(Float)
    currency = Column(String, default='usd')
    stripe_price_id = Column(String)
    parent_id = Column(Integer, ForeignKey("documentation.id"), index=True)
    order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    category = relationship("Category")
    parent = relationship("Documentation", remote_side=[id], back_populates="sections")
    sections = relationship("Documentation", back_populates="parent", order_by="Documentation.order")
