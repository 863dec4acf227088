"""Tenders (bid packages) issued on a project"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from datetime import datetime
import enum

from sitepulse.core.database import Base
from sitepulse.core.types import GUID, generate_uuid


class TenderStatus(str, enum.Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    AWARDED = "awarded"


class Tender(Base):
    __tablename__ = "tenders"

    __table_args__ = (
        Index('ix_tenders_project_id', 'project_id'),
        Index('ix_tenders_status', 'status'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False, default="")
    status = Column(String(50), nullable=False, default=TenderStatus.DRAFT.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Tender {self.title} ({self.status})>"
