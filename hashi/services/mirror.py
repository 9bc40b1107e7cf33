"""Local mirror of both trackers, keyed by remote id"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from hashi.errors import LocalInconsistencyError
from hashi.models import SyncAction, SyncLog
from hashi.models.base import SessionLocal

logger = logging.getLogger(__name__)


class LocalMirror:
    """Durable, queryable copy of every synced entity.

    Every write is an upsert by the remote ``id``. Each call opens its own
    session, so the mirror can be shared between worker threads.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _apply(row: Any, record: Dict[str, Any], columns: Iterable[str]) -> None:
        for key in columns:
            if key in record and key != "id":
                setattr(row, key, record[key])

    def upsert(self, model, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or update one record; keys absent from ``record`` are left untouched."""
        record_id = record.get("id")
        if record_id is None:
            raise LocalInconsistencyError(f"{model.__name__} record has no remote id", record)
        columns = model.column_names()
        try:
            with self._session() as db:
                row = db.get(model, record_id)
                if row is None:
                    row = model.from_record(record)
                    db.add(row)
                else:
                    self._apply(row, record, columns)
                db.flush()
                return row.to_record()
        except IntegrityError:
            # Another writer inserted the same id first; fall back to an update.
            with self._session() as db:
                row = db.get(model, record_id)
                if row is None:
                    raise
                self._apply(row, record, columns)
                db.flush()
                return row.to_record()

    def upsert_many(self, model, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.upsert(model, record) for record in records]

    def get(self, model, record_id: Any) -> Optional[Dict[str, Any]]:
        with self._session() as db:
            row = db.get(model, record_id)
            return row.to_record() if row is not None else None

    def find(self, model, **criteria: Any) -> List[Dict[str, Any]]:
        """Exact-match query on column values"""
        with self._session() as db:
            rows = db.query(model).filter_by(**criteria).order_by(model.id).all()
            return [row.to_record() for row in rows]

    def text_search(self, model, field: str, query: str) -> List[Dict[str, Any]]:
        """Case-insensitive substring search over a text column.

        Results are ordered oldest first (creation time, then id), so callers
        that consume only the first hit get a stable answer.
        """
        column = getattr(model, field, None)
        if column is None:
            raise LocalInconsistencyError(f"{model.__name__} has no searchable field", field)
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        ordering = [model.id]
        if hasattr(model, "created_at"):
            ordering.insert(0, model.created_at.is_(None))
            ordering.insert(1, model.created_at)
        with self._session() as db:
            rows = (
                db.query(model)
                .filter(column.ilike(f"%{escaped}%", escape="\\"))
                .order_by(*ordering)
                .all()
            )
            return [row.to_record() for row in rows]

    def delete(self, model, record_id: Any) -> bool:
        with self._session() as db:
            row = db.get(model, record_id)
            if row is None:
                return False
            db.delete(row)
            return True

    def log_result(
        self,
        action: SyncAction,
        issue: Optional[Dict[str, Any]] = None,
        task_id: Optional[str] = None,
        message: str = "",
    ) -> None:
        """Record a reconciliation outcome. Never raises."""
        issue = issue or {}
        repo = None
        if issue.get("repo_owner") and issue.get("repo_name"):
            repo = f"{issue['repo_owner']}/{issue['repo_name']}"
        try:
            with self._session() as db:
                db.add(
                    SyncLog(
                        issue_id=issue.get("id"),
                        issue_number=issue.get("number"),
                        repo=repo,
                        task_id=task_id,
                        action=action,
                        message=message,
                    )
                )
        except Exception as e:
            logger.error(f"Failed to persist sync log ({action.value}): {e}")

    def recent_logs(self, limit: int = 100, repo: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._session() as db:
            query = db.query(SyncLog).order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
            if repo:
                query = query.filter(SyncLog.repo == repo)
            return [row.to_record() for row in query.limit(limit).all()]
