"""Asana task model"""

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, String, Text

from hashi.models.base import Base, RecordMixin


class Task(RecordMixin, Base):
    """Mirrored Asana task (the sync target).

    ``notes`` carries the "(GH <number>)" tag that links the task to its
    GitHub issue; there is no other link between the two.
    """

    __tablename__ = "tasks"

    id = Column(String, primary_key=True)  # Asana gid
    name = Column(String, nullable=False, default="")
    notes = Column(Text, nullable=True)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    assignee_status = Column(String, nullable=True)
    project_ids = Column(JSON, default=list)
    workspace_id = Column(String, nullable=True, index=True)
    due_on = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=True)
    modified_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Task(id={self.id}, name='{self.name}', completed={self.completed})>"
