"""Projects and team membership (the access-scope source)"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from sitepulse.core.database import Base
from sitepulse.core.types import GUID, generate_uuid


class Project(Base):
    """Construction project"""
    __tablename__ = "projects"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    members = relationship("ProjectMembership", back_populates="project", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Project {self.name}>"


class ProjectMembership(Base):
    """
    A user on a project team.

    Created when a user is added to the team, deleted on removal. The set of
    memberships for a user is that user's access scope.
    """
    __tablename__ = "project_users"

    __table_args__ = (
        UniqueConstraint('project_id', 'user_id', name='uq_project_users_project_user'),
        Index('ix_project_users_user_id', 'user_id'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    project_id = Column(GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(GUID, nullable=False)
    role = Column(String(50), nullable=False, default="member")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="members")

    def __repr__(self):
        return f"<ProjectMembership {self.user_id} in {self.project_id}>"
