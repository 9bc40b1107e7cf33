"""Asana REST API client wrapper"""
import httpx
import logging
import time
from datetime import date
from typing import Any, Dict, Iterator, List, Optional

from hashi.errors import AsanaApplicationError
from hashi.utils import parse_datetime

logger = logging.getLogger(__name__)

TASK_FIELDS = (
    "name,notes,completed,completed_at,assignee_status,due_on,"
    "projects,workspace,created_at,modified_at"
)
PROJECT_FIELDS = "name,archived,notes,workspace,created_at,modified_at"
WORKSPACE_FIELDS = "name,is_organization"
STORY_FIELDS = "created_at,text,type,resource_subtype"

# Fields we track locally but Asana computes itself; never sent on the wire.
READ_ONLY_TASK_FIELDS = frozenset({"completed_at", "created_at", "modified_at"})


def _gid(obj: Any) -> Optional[str]:
    if not obj:
        return None
    if isinstance(obj, dict):
        value = obj.get("gid", obj.get("id"))
    else:
        value = obj
    return str(value) if value is not None else None


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class AsanaClient:
    """Wrapper for Asana API operations.

    Hides pagination, retries transient failures and turns Asana's
    ``{"errors": [...]}`` envelope into ``AsanaApplicationError``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://app.asana.com/api/1.0",
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        """Initialize Asana client"""
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
        )

    def close(self) -> None:
        self.http.close()

    @staticmethod
    def _should_retry(exc: Exception) -> bool:
        """Best-effort retry predicate for transient Asana failures."""
        if isinstance(exc, httpx.TransportError):
            return True
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in (429, 500, 502, 503, 504)
        return False

    def _with_retries(self, fn, *, max_attempts: int = 3, base_delay_s: float = 0.5):
        """Run callable with small exponential backoff on transient errors."""
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as e:
                if attempt >= max_attempts or not self._should_retry(e):
                    raise
                time.sleep(base_delay_s * (2 ** (attempt - 1)))
                attempt += 1

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        def _send() -> httpx.Response:
            resp = self.http.request(
                method, path, params=params, json={"data": data} if data is not None else None
            )
            if resp.status_code == 429 or resp.status_code >= 500:
                resp.raise_for_status()
            return resp

        resp = self._with_retries(_send)
        if resp.status_code == 401 or resp.status_code >= 500:
            resp.raise_for_status()

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            errors = (body or {}).get("errors") if isinstance(body, dict) else None
            if not errors:
                resp.raise_for_status()
            message = "; ".join(str(e.get("message", e)) for e in errors)
            raise AsanaApplicationError(message, payload=body, status_code=resp.status_code)

        if not isinstance(body, dict):
            raise AsanaApplicationError(
                f"Unexpected response from {method} {path}", payload=resp.text, status_code=resp.status_code
            )
        return body

    def _paginate(self, path: str, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        params = dict(params)
        params.setdefault("limit", 100)
        while True:
            body = self._request("GET", path, params=params)
            for item in body.get("data") or []:
                yield item
            next_page = body.get("next_page")
            if not next_page or not next_page.get("offset"):
                return
            params["offset"] = next_page["offset"]

    @staticmethod
    def workspace_record(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": _gid(data),
            "name": data.get("name") or "",
            "is_organization": bool(data.get("is_organization", False)),
        }

    @staticmethod
    def project_record(data: Dict[str, Any], workspace_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": _gid(data),
            "name": data.get("name") or "",
            "workspace_id": _gid(data.get("workspace")) or workspace_id,
            "archived": bool(data.get("archived", False)),
            "notes": data.get("notes"),
            "created_at": parse_datetime(data.get("created_at")),
            "modified_at": parse_datetime(data.get("modified_at")),
        }

    @staticmethod
    def task_record(data: Dict[str, Any], project: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        project_ids = [_gid(p) for p in data.get("projects") or [] if _gid(p)]
        if project is not None and project.get("id") not in project_ids:
            project_ids.append(project["id"])
        workspace_id = _gid(data.get("workspace"))
        if workspace_id is None and project is not None:
            workspace_id = project.get("workspace_id")
        return {
            "id": _gid(data),
            "name": data.get("name") or "",
            "notes": data.get("notes") or "",
            "completed": bool(data.get("completed", False)),
            "completed_at": parse_datetime(data.get("completed_at")),
            "assignee_status": data.get("assignee_status"),
            "project_ids": project_ids,
            "workspace_id": workspace_id,
            "due_on": _parse_date(data.get("due_on")),
            "created_at": parse_datetime(data.get("created_at")),
            "modified_at": parse_datetime(data.get("modified_at")),
        }

    def list_workspaces(self) -> List[Dict[str, Any]]:
        """Get all workspaces visible to the API key"""
        try:
            items = self._paginate("/workspaces", {"opt_fields": WORKSPACE_FIELDS})
            return [self.workspace_record(item) for item in items]
        except Exception as e:
            logger.error(f"Failed to list workspaces: {e}")
            raise

    def list_projects(self, workspace: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Get all projects in a workspace"""
        try:
            items = self._paginate(
                f"/workspaces/{workspace['id']}/projects", {"opt_fields": PROJECT_FIELDS}
            )
            return [self.project_record(item, workspace_id=workspace["id"]) for item in items]
        except Exception as e:
            logger.error(f"Failed to list projects for workspace {workspace.get('name')}: {e}")
            raise

    def list_tasks(self, project: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Get all tasks in a project"""
        try:
            items = self._paginate(f"/projects/{project['id']}/tasks", {"opt_fields": TASK_FIELDS})
            return [self.task_record(item, project=project) for item in items]
        except Exception as e:
            logger.error(f"Failed to list tasks for project {project.get('name')}: {e}")
            raise

    def create_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new task; returns the remote-confirmed task record"""
        data = {k: v for k, v in payload.items() if k not in READ_ONLY_TASK_FIELDS}
        try:
            body = self._request("POST", "/tasks", params={"opt_fields": TASK_FIELDS}, data=data)
        except Exception as e:
            logger.error(f"Failed to create task '{payload.get('name')}': {e}")
            raise
        task = self.task_record(body.get("data") or {})
        logger.info(f"Created task {task['id']} '{task['name']}'")
        return task

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update; only ``fields`` are sent"""
        data = {k: v for k, v in fields.items() if k not in READ_ONLY_TASK_FIELDS}
        try:
            body = self._request(
                "PUT", f"/tasks/{task_id}", params={"opt_fields": TASK_FIELDS}, data=data
            )
        except Exception as e:
            logger.error(f"Failed to update task {task_id}: {e}")
            raise
        logger.info(f"Updated task {task_id} ({', '.join(sorted(fields))})")
        return self.task_record(body.get("data") or {})

    def list_stories(self, task: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Get the activity stories (comments, system events) of a task"""
        try:
            items = self._paginate(f"/tasks/{task['id']}/stories", {"opt_fields": STORY_FIELDS})
            return [
                {
                    "id": _gid(item),
                    "task_id": task["id"],
                    "created_at": parse_datetime(item.get("created_at")),
                    "text": item.get("text"),
                    "type": item.get("type"),
                    "resource_subtype": item.get("resource_subtype"),
                }
                for item in items
            ]
        except Exception as e:
            logger.error(f"Failed to list stories for task {task.get('id')}: {e}")
            raise
