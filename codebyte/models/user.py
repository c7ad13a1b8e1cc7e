"""User model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from codebyte.database import Base

USER_ROLES = ('USER', 'ADMIN', 'INSTRUCTOR')


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, nullable=True)
    first_name = Column(String)
    last_name = Column(String)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default='USER')  # USER/ADMIN/INSTRUCTOR
    avatar = Column(String)
    bio = Column(Text)
    reset_password_token = Column(String, index=True)  # sha256 hex of the emailed token
    reset_password_expires = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    purchases = relationship("Purchase", back_populates="user")
