"""
Append-only audit trail for report activity.

Every report-touching operation writes one row here. Rows are never
updated or deleted.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from formplay.models.base import Base


class LogAction(str, enum.Enum):
    CREATED = "created"
    VIEWED = "viewed"
    UPDATED = "updated"
    APPROVED = "approved"
    DENIED = "denied"
    REPLICATED = "replicated"


class TpsLog(Base):
    """Audit log entry for a single report action."""

    __tablename__ = "tps_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tps_id = Column(Integer, ForeignKey("tps_reports.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    report = relationship("TpsReport", back_populates="logs")
    user = relationship("User", lazy="joined")

    @property
    def user_name(self) -> str:
        return self.user.name if self.user else "Unknown"

    def __repr__(self):
        """String representation of the TpsLog model."""
        return (
            f"<TpsLog(id={self.id}, tps_id={self.tps_id}, "
            f"action='{self.action}', user_id={self.user_id})>"
        )
