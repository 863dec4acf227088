"""Project messages"""
from sqlalchemy import Column, DateTime, Text, ForeignKey, Index
from datetime import datetime

from sitepulse.core.database import Base
from sitepulse.core.types import GUID, generate_uuid


class Message(Base):
    """A message posted to a project thread"""
    __tablename__ = "messages"

    __table_args__ = (
        Index('ix_messages_project_id', 'project_id'),
        Index('ix_messages_created_at', 'created_at'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(GUID, nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Message {self.id} from {self.sender_id}>"
