"""Purchase ledger model definitions."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from codebyte.database import Base

PURCHASE_STATUSES = ('pending', 'completed', 'failed', 'refunded')
RESOURCE_TYPES = ('documentation', 'course')


class Purchase(Base):
    """A user's purchase of exactly one documentation item or course."""
    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint('user_id', 'documentation_id', name='uq_purchases_user_documentation'),
        UniqueConstraint('user_id', 'course_id', name='uq_purchases_user_course'),
        CheckConstraint(
            '(documentation_id IS NULL) <> (course_id IS NULL)',
            name='ck_purchases_single_resource',
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    documentation_id = Column(Integer, ForeignKey("documentation.id"), nullable=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    resource_type = Column(String, nullable=False)
    amount = Column(Float, nullable=False, default=0)
    currency = Column(String, default='usd')
    stripe_session_id = Column(String, index=True)
    stripe_payment_intent_id = Column(String)
    status = Column(String, nullable=False, default='pending')
    purchase_date = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    user = relationship("User", back_populates="purchases")
    documentation = relationship("Documentation")
    course = relationship("Course")

    @property
    def resource_id(self) -> int | None:
        return self.documentation_id if self.resource_type == 'documentation' else self.course_id
