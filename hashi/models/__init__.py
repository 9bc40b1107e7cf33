"""Database models"""

from hashi.models.base import Base
from hashi.models.issue import Hook, Issue
from hashi.models.sync_log import SyncAction, SyncLog
from hashi.models.task import Task
from hashi.models.workspace import Project, Workspace

__all__ = [
    "Base",
    "Workspace",
    "Project",
    "Task",
    "Issue",
    "Hook",
    "SyncLog",
    "SyncAction",
]
