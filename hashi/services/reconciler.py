"""Issue -> task reconciliation"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hashi.errors import LocalInconsistencyError, RemoteApplicationError
from hashi.models import SyncAction, Task
from hashi.services.asana_client import AsanaClient
from hashi.services.linker import IdentityLinker, build_task_notes, correlation_tag
from hashi.services.mirror import LocalMirror

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """What reconciling one issue did"""

    action: SyncAction
    task: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.action != SyncAction.FAILED


class KeyedLocks:
    """In-process mutual exclusion per key; locks live only while held or awaited."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class Reconciler:
    """Decides, per issue, whether to create, update or leave its task alone"""

    def __init__(
        self,
        asana: AsanaClient,
        mirror: LocalMirror,
        linker: Optional[IdentityLinker] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.asana = asana
        self.mirror = mirror
        self.linker = linker or IdentityLinker(mirror)
        self.locks = locks or KeyedLocks()

    @staticmethod
    def build_task_payload(issue: Dict[str, Any]) -> Dict[str, Any]:
        """Asana create payload for a brand new task"""
        return {
            "name": issue.get("title") or "",
            "notes": build_task_notes(issue),
            "completed": False,
            # Always the identity owning the API key
            "assignee": "me",
            "assignee_status": "inbox",
            "projects": [issue["p_id"]],
            "workspace": issue["w_id"],
        }

    @staticmethod
    def diff(issue: Dict[str, Any], task: Dict[str, Any]) -> Dict[str, Any]:
        """Fields that must change on ``task`` to match ``issue``.

        Completion only flows one way: a closed issue completes its task,
        but reopening the issue never reopens the task.
        """
        staged: Dict[str, Any] = {}
        title = issue.get("title") or ""
        if title != (task.get("name") or ""):
            staged["name"] = title
        if issue.get("state") == "closed" and not task.get("completed"):
            staged["completed"] = True
            staged["completed_at"] = issue.get("closed_at")
        notes = build_task_notes(issue)
        if notes != (task.get("notes") or ""):
            staged["notes"] = notes
        return staged

    def reconcile(self, issue: Dict[str, Any]) -> ReconcileResult:
        """Converge the task linked to ``issue`` (creating it if needed)"""
        if not issue.get("p_id") or not issue.get("w_id"):
            raise LocalInconsistencyError("Issue has no resolved project/workspace", issue)

        with self.locks.hold(correlation_tag(issue["number"]).lower()):
            task = self.linker.find_linked_task(issue)
            if task is None:
                result = self._create(issue)
            else:
                result = self._update(issue, task)

        if result.action == SyncAction.NOOP:
            logger.debug(f"Issue #{issue['number']} already in sync with task {result.task['id']}")
        else:
            message = result.error or ", ".join(result.changed_fields)
            self.mirror.log_result(
                result.action,
                issue,
                task_id=(result.task or {}).get("id"),
                message=message,
            )
        return result

    def _create(self, issue: Dict[str, Any]) -> ReconcileResult:
        payload = self.build_task_payload(issue)
        try:
            remote = self.asana.create_task(payload)
        except RemoteApplicationError as e:
            logger.error(f"Failed to create task '{payload['name']}' for issue #{issue['number']}: {e.message}")
            return ReconcileResult(
                SyncAction.FAILED,
                error=f"Failed to create task '{payload['name']}': {e.message}",
            )

        record = dict(remote)
        if not record.get("project_ids"):
            record["project_ids"] = [issue["p_id"]]
        if not record.get("workspace_id"):
            record["workspace_id"] = issue["w_id"]
        task = self.mirror.upsert(Task, record)
        logger.info(f"Created task {task['id']} for issue #{issue['number']}")
        return ReconcileResult(SyncAction.CREATED, task=task, changed_fields=sorted(payload))

    def _update(self, issue: Dict[str, Any], task: Dict[str, Any]) -> ReconcileResult:
        staged = self.diff(issue, task)
        if not staged:
            return ReconcileResult(SyncAction.NOOP, task=task)

        try:
            remote = self.asana.update_task(task["id"], staged)
        except RemoteApplicationError as e:
            logger.error(f"Failed to update task {task['id']} for issue #{issue['number']}: {e.message}")
            return ReconcileResult(
                SyncAction.FAILED,
                task=task,
                error=f"Failed to update task {task['id']} '{task.get('name')}': {e.message}",
            )

        merged = dict(task)
        merged.update({k: v for k, v in (remote or {}).items() if v not in (None, "", [])})
        merged.update(staged)
        merged["id"] = task["id"]
        updated = self.mirror.upsert(Task, merged)
        logger.info(f"Updated task {task['id']} for issue #{issue['number']}: {sorted(staged)}")
        return ReconcileResult(SyncAction.UPDATED, task=updated, changed_fields=sorted(staged))
