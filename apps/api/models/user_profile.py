"""User profile model."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class UserProfile(Base):
    """Display profile for a token subject (program creators)."""

    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    role = Column(String, nullable=False, default="viewer")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
