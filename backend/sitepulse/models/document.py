"""Project documents (file metadata only, content lives in object storage)"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from datetime import datetime

from sitepulse.core.database import Base
from sitepulse.core.types import GUID, generate_uuid


class Document(Base):
    __tablename__ = "documents"

    __table_args__ = (
        Index('ix_documents_project_id', 'project_id'),
        Index('ix_documents_created_at', 'created_at'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    uploaded_by = Column(GUID, nullable=False)
    name = Column(String(500), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Document {self.name}>"
