"""Requests for information"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from datetime import datetime
import enum

from sitepulse.core.database import Base
from sitepulse.core.types import GUID, generate_uuid


class RFIStatus(str, enum.Enum):
    """RFI workflow status"""
    OUTSTANDING = "outstanding"
    OVERDUE = "overdue"
    IN_REVIEW = "in_review"
    ANSWERED = "answered"
    REJECTED = "rejected"
    CLOSED = "closed"
    DRAFT = "draft"
    SENT = "sent"
    RECEIVED = "received"
    SUBMITTED = "submitted"
    OPEN = "open"
    VOID = "void"


# Statuses that need action from the assignee
ACTIONABLE_RFI_STATUSES = (RFIStatus.OUTSTANDING, RFIStatus.OVERDUE)


class RFI(Base):
    """Request for information raised on a project"""
    __tablename__ = "rfis"

    __table_args__ = (
        Index('ix_rfis_project_id', 'project_id'),
        Index('ix_rfis_assigned_to', 'assigned_to'),
        Index('ix_rfis_status', 'status'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    raised_by = Column(GUID, nullable=True)
    assigned_to = Column(GUID, nullable=True)
    subject = Column(String(500), nullable=False, default="")
    # Plain string to match the hosted schema (no native enum type)
    status = Column(String(50), nullable=False, default=RFIStatus.DRAFT.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<RFI {self.subject} ({self.status})>"
