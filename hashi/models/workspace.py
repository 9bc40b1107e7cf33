"""Asana workspace and project models"""

from sqlalchemy import Boolean, Column, DateTime, String, Text

from hashi.models.base import Base, RecordMixin


class Workspace(RecordMixin, Base):
    """Root scope in Asana. Refreshed every pass, never deleted."""

    __tablename__ = "workspaces"

    id = Column(String, primary_key=True)  # Asana gid
    name = Column(String, nullable=False, index=True)
    is_organization = Column(Boolean, default=False)

    def __repr__(self):
        return f"<Workspace(id={self.id}, name='{self.name}')>"


class Project(RecordMixin, Base):
    """Asana project; belongs to exactly one workspace"""

    __tablename__ = "projects"

    id = Column(String, primary_key=True)  # Asana gid
    name = Column(String, nullable=False, index=True)
    workspace_id = Column(String, nullable=True, index=True)
    archived = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=True)
    modified_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}', workspace={self.workspace_id})>"
