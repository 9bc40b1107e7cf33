"""Issue -> task linkage via the correlation tag embedded in task notes"""

import logging
from typing import Any, Dict, Optional

from hashi.errors import LocalInconsistencyError
from hashi.models import Task
from hashi.services.mirror import LocalMirror

logger = logging.getLogger(__name__)


def correlation_tag(number: int) -> str:
    """Tag written at the top of a task's notes, e.g. "(GH 42)"."""
    return f"(GH {int(number)})"


def build_task_notes(issue: Dict[str, Any]) -> str:
    """Notes body for the task mirroring ``issue``: tag, issue body, issue url."""
    body = (issue.get("body") or "").replace("\r\n", "\n")
    return f"{correlation_tag(issue['number'])}\n{body}\n{issue.get('url') or ''}"


class IdentityLinker:
    """Finds the task linked to an issue through a notes text search.

    The first hit wins. Ambiguity (several tasks carrying the same tag) is
    logged but not resolved.
    """

    def __init__(self, mirror: LocalMirror):
        self.mirror = mirror

    def find_linked_task(self, issue: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if issue.get("number") is None:
            raise LocalInconsistencyError("Issue has no number", issue)

        tag = correlation_tag(issue["number"]).lower()
        hits = self.mirror.text_search(Task, "notes", tag)
        if not hits:
            return None

        if len(hits) > 1:
            logger.warning(
                f"{len(hits)} tasks carry tag {tag!r}; using task {hits[0].get('id')}"
            )
        task = hits[0]
        if not isinstance(task, dict) or not task.get("id"):
            raise LocalInconsistencyError("Search hit has no task id", task)
        return task
