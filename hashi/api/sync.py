"""Sync management endpoints"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from hashi.api.deps import Services, get_services
from hashi.models import Hook, Issue, Task

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncLogResponse(BaseModel):
    id: int
    issue_id: Optional[int] = None
    issue_number: Optional[int] = None
    repo: Optional[str] = None
    task_id: Optional[str] = None
    action: str
    message: Optional[str] = None
    created_at: datetime


class IssueResponse(BaseModel):
    id: int
    number: int
    title: str
    state: str
    assignee_login: Optional[str] = None
    repo_owner: str
    repo_name: str
    url: Optional[str] = None
    closed_at: Optional[datetime] = None
    p_id: Optional[str] = None
    w_id: Optional[str] = None


class TaskResponse(BaseModel):
    id: str
    name: str
    notes: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    project_ids: List[str] = []
    workspace_id: Optional[str] = None


class ReconcileResponse(BaseModel):
    action: str
    task_id: Optional[str] = None
    changed_fields: List[str] = []
    error: Optional[str] = None


@router.post("/trigger")
def trigger_sync(services: Services = Depends(get_services)):
    """Run the next full sync cycle now"""
    services.scheduler.trigger_now()
    return {"status": "scheduled"}


@router.get("/status")
def sync_status(services: Services = Depends(get_services)):
    """Scheduler state and the last cycle's report"""
    return services.scheduler.status()


@router.post("/issues/{issue_id}/reconcile", response_model=ReconcileResponse)
def reconcile_issue(issue_id: int, services: Services = Depends(get_services)):
    """Reconcile one mirrored issue immediately"""
    issue = services.mirror.get(Issue, issue_id)
    if not issue:
        raise HTTPException(status_code=404, detail="Issue not found")
    try:
        result = services.orchestrator.reconcile_one(issue)
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))
    if result is None:
        raise HTTPException(status_code=409, detail="Issue is not bound to a monitored project")
    return ReconcileResponse(
        action=result.action.value,
        task_id=(result.task or {}).get("id"),
        changed_fields=result.changed_fields,
        error=result.error,
    )


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(
    limit: int = 100,
    repo: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """List sync logs"""
    return [
        SyncLogResponse(**dict(log, action=log["action"].value))
        for log in services.mirror.recent_logs(limit=limit, repo=repo)
    ]


@router.get("/issues", response_model=List[IssueResponse])
def list_issues(repo: Optional[str] = None, services: Services = Depends(get_services)):
    """List mirrored issues, optionally for one "owner/name" repository"""
    criteria = {}
    if repo:
        owner, _, name = repo.partition("/")
        criteria = {"repo_owner": owner, "repo_name": name}
    return services.mirror.find(Issue, **criteria)


@router.get("/tasks", response_model=List[TaskResponse])
def list_tasks(project_id: Optional[str] = None, services: Services = Depends(get_services)):
    """List mirrored tasks, optionally only those in one project"""
    tasks = [dict(t, project_ids=t.get("project_ids") or []) for t in services.mirror.find(Task)]
    if project_id:
        tasks = [t for t in tasks if project_id in t["project_ids"]]
    return tasks


@router.delete("/hooks/{hook_id}")
def delete_hook(hook_id: int, services: Services = Depends(get_services)):
    """Remove a registered hook on GitHub and locally.

    The next sync cycle will register a fresh one for bound repositories.
    """
    hook = services.mirror.get(Hook, hook_id)
    if not hook:
        raise HTTPException(status_code=404, detail="Hook not found")
    try:
        services.github.delete_webhook(hook["repo_owner"], hook["repo_name"], hook_id)
    except Exception as e:
        raise HTTPException(status_code=502, detail=str(e))
    services.mirror.delete(Hook, hook_id)
    return {"message": "Hook deleted successfully"}
