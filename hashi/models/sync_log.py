"""Sync log model"""
from sqlalchemy import BigInteger, Column, Integer, String, DateTime, Text, Enum
from datetime import datetime
import enum
from hashi.models.base import Base, RecordMixin


class SyncAction(str, enum.Enum):
    """Outcome of reconciling one issue"""
    CREATED = "created"
    UPDATED = "updated"
    NOOP = "noop"
    FAILED = "failed"


class SyncLog(RecordMixin, Base):
    """Log of reconciliation outcomes"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Issue information
    issue_id = Column(BigInteger, nullable=True)
    issue_number = Column(Integer, nullable=True)
    repo = Column(String, nullable=True)

    # Task information
    task_id = Column(String, nullable=True)

    # Outcome
    action = Column(Enum(SyncAction), nullable=False)
    message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(action={self.action}, repo={self.repo}, issue={self.issue_number})>"
