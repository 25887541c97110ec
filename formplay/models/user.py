"""
User model for authentication and partner lookup.

The system is a closed two-user universe: each user points at a fixed
partner, who is the receiver of every report that user creates.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from formplay.models.base import Base
from formplay.core.security import get_password_hash

class User(Base):
    """User model representing one side of the report pair."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False)
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    partner = relationship("User", remote_side=[id], foreign_keys=[partner_id], post_update=True)

    def __repr__(self) -> str:
        """String representation of the User model."""
        return f"<User(id={self.id}, username='{self.username}', partner_id={self.partner_id})>"

    def set_password(self, password: str) -> None:
        """Set the user's password."""
        self.hashed_password = get_password_hash(password)
