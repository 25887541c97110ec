"""
TPS report model and its status lifecycle.

A report moves draft -> pending_review -> pending_approval and ends in
completed or aborted. Terminal reports are never mutated again; replication
creates a new report pointing back at the old one.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Date, Text, JSON, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from formplay.models.base import Base


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PENDING_APPROVAL = "pending_approval"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ReportStatus.COMPLETED, ReportStatus.ABORTED})
PENDING_STATUSES = frozenset({ReportStatus.PENDING_REVIEW, ReportStatus.PENDING_APPROVAL})


class TpsReport(Base):
    """A report exchanged between a creator and their partner."""

    __tablename__ = "tps_reports"
    __table_args__ = (
        CheckConstraint("creator_id <> receiver_id", name="ck_tps_reports_distinct_parties"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ReportStatus.DRAFT.value, index=True)
    version = Column(Integer, nullable=False, default=1)

    date = Column(Date, nullable=False)
    time_start = Column(String(5), nullable=True)
    time_end = Column(String(5), nullable=True)
    location = Column(String(100), nullable=True)
    location_other = Column(String(255), nullable=True)
    sound = Column(String(100), nullable=True)
    form_data = Column(JSON, nullable=False, default=dict)
    creator_notes = Column(Text, nullable=True)
    receiver_notes = Column(Text, nullable=True)
    creator_initials = Column(String(10), nullable=True)
    receiver_initials = Column(String(10), nullable=True)

    replicated_from_id = Column(Integer, ForeignKey("tps_reports.id"), nullable=True)
    pdf_path = Column(String(500), nullable=True)

    creator = relationship("User", foreign_keys=[creator_id], lazy="joined")
    receiver = relationship("User", foreign_keys=[receiver_id], lazy="joined")
    logs = relationship("TpsLog", back_populates="report", order_by="TpsLog.id")

    @property
    def status_enum(self) -> ReportStatus:
        return ReportStatus(self.status)

    @property
    def creator_name(self) -> str:
        return self.creator.name if self.creator else "Unknown"

    @property
    def receiver_name(self) -> str:
        return self.receiver.name if self.receiver else "Unknown"

    def __repr__(self) -> str:
        """String representation of the TpsReport model."""
        return (
            f"<TpsReport(id={self.id}, status='{self.status}', "
            f"creator_id={self.creator_id}, receiver_id={self.receiver_id})>"
        )
