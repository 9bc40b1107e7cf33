"""GitHub issue and hook models"""

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text

from hashi.models.base import Base, RecordMixin


class Issue(RecordMixin, Base):
    """Mirrored GitHub issue (the sync source)"""

    __tablename__ = "issues"
    __table_args__ = (
        Index("ix_issues_repo_assignee", "repo_owner", "repo_name", "assignee_login"),
    )

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # GitHub issue id
    number = Column(Integer, nullable=False)
    title = Column(String, nullable=False, default="")
    body = Column(Text, nullable=True)
    state = Column(String, nullable=False, default="open")  # open | closed
    assignee_login = Column(String, nullable=True)
    assignee_id = Column(BigInteger, nullable=True)
    repo_owner = Column(String, nullable=False)
    repo_name = Column(String, nullable=False)
    url = Column(String, nullable=True)  # html url
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    # Target Asana project/workspace, resolved from the repo binding at sync time
    p_id = Column(String, nullable=True)
    w_id = Column(String, nullable=True)

    def __repr__(self):
        return f"<Issue({self.repo_owner}/{self.repo_name}#{self.number}, state={self.state})>"


class Hook(RecordMixin, Base):
    """GitHub webhook registered for a watched repository"""

    __tablename__ = "hooks"
    __table_args__ = (Index("ix_hooks_repo", "repo_owner", "repo_name"),)

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # GitHub hook id
    repo_owner = Column(String, nullable=False)
    repo_name = Column(String, nullable=False)
    url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Hook(id={self.id}, repo={self.repo_owner}/{self.repo_name})>"
