"""Full sync passes and single-issue reconciliation"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from hashi.config import RepoBinding
from hashi.models import Issue, Project, SyncAction, Task, Workspace
from hashi.services.asana_client import AsanaClient
from hashi.services.github_client import GitHubClient
from hashi.services.hook_registrar import HookRegistrar
from hashi.services.mirror import LocalMirror
from hashi.services.reconciler import ReconcileResult, Reconciler
from hashi.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class TaskScope:
    """Name -> gid maps for the monitored Asana workspaces and projects"""

    workspace_ids: Dict[str, str] = field(default_factory=dict)
    # (workspace name, project name) -> project gid
    project_ids: Dict[Tuple[str, str], str] = field(default_factory=dict)
    tasks: int = 0
    errors: List[str] = field(default_factory=list)

    def resolve(self, binding: RepoBinding) -> Optional[Tuple[str, str]]:
        """(p_id, w_id) for a binding, or None if either name is unmonitored"""
        w_id = self.workspace_ids.get(binding.workspace)
        p_id = self.project_ids.get((binding.workspace, binding.project))
        if not w_id or not p_id:
            return None
        return p_id, w_id


@dataclass
class CycleReport:
    """Summary of one full pass"""

    started_at: datetime
    finished_at: Optional[datetime] = None
    stats: Dict[str, int] = field(
        default_factory=lambda: {
            "issues": 0,
            "tasks": 0,
            "created": 0,
            "updated": 0,
            "noop": 0,
            "failed": 0,
            "hooks_failed": 0,
        }
    )
    errors: List[str] = field(default_factory=list)
    fanned_out: bool = False

    def record(self, result: ReconcileResult) -> None:
        key = {
            SyncAction.CREATED: "created",
            SyncAction.UPDATED: "updated",
            SyncAction.NOOP: "noop",
        }.get(result.action, "failed")
        self.stats[key] += 1
        if result.error:
            self.errors.append(result.error)

    @property
    def status(self) -> str:
        if not self.fanned_out:
            return "failed"
        return "partial" if self.errors else "success"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stats": dict(self.stats),
            "errors": list(self.errors),
        }


class SyncOrchestrator:
    """Runs full passes (populate both sides, then reconcile every issue)
    and single-issue reconciliation for the webhook path.

    Passes and webhook reconciles may overlap; safety relies on upsert-by-id
    in the mirror and on the reconciler's diff-before-write and per-tag lock.
    """

    def __init__(
        self,
        bindings: List[RepoBinding],
        asana: AsanaClient,
        github: GitHubClient,
        mirror: LocalMirror,
        reconciler: Reconciler,
        registrar: HookRegistrar,
        max_workers: int = 8,
    ):
        self.bindings = list(bindings)
        self.asana = asana
        self.github = github
        self.mirror = mirror
        self.reconciler = reconciler
        self.registrar = registrar
        self.max_workers = max(2, max_workers)

    def binding_for(self, issue: Dict[str, Any]) -> Optional[RepoBinding]:
        for binding in self.bindings:
            if binding.matches(issue.get("repo_owner"), issue.get("repo_name"), issue.get("assignee_login")):
                return binding
        return None

    def populate_tasks(self) -> TaskScope:
        """Workspaces -> monitored projects -> their tasks, all mirrored.

        A failed workspace listing aborts the branch; a failure on a single
        workspace or project is logged and skipped.
        """
        scope = TaskScope()
        watched_workspaces = {b.workspace for b in self.bindings}

        workspaces = self.asana.list_workspaces()
        self.mirror.upsert_many(Workspace, workspaces)

        for workspace in workspaces:
            if workspace["name"] not in watched_workspaces:
                continue
            scope.workspace_ids[workspace["name"]] = workspace["id"]
            watched_projects = {b.project for b in self.bindings if b.workspace == workspace["name"]}

            try:
                projects = self.asana.list_projects(workspace)
            except Exception as e:
                logger.error(f"Failed to list projects in workspace '{workspace['name']}': {e}")
                scope.errors.append(f"Failed to list projects in workspace '{workspace['name']}': {e}")
                continue
            self.mirror.upsert_many(Project, projects)

            for project in projects:
                if project["name"] not in watched_projects:
                    continue
                scope.project_ids[(workspace["name"], project["name"])] = project["id"]
                try:
                    tasks = self.asana.list_tasks(project)
                except Exception as e:
                    logger.error(f"Failed to list tasks in project '{project['name']}': {e}")
                    scope.errors.append(f"Failed to list tasks in project '{project['name']}': {e}")
                    continue
                self.mirror.upsert_many(Task, tasks)
                scope.tasks += len(tasks)

        logger.info(
            f"Mirrored {len(scope.workspace_ids)} workspaces, "
            f"{len(scope.project_ids)} projects, {scope.tasks} tasks"
        )
        return scope

    def populate_issues(self) -> Dict[str, Any]:
        """Mirror every issue (open and closed) assigned to each tracked user"""
        counts: Dict[str, int] = {}
        errors: List[str] = []
        for binding in self.bindings:
            try:
                issues = self.github.list_issues(
                    binding.owner, binding.name, binding.github_user, state="all"
                )
                self.mirror.upsert_many(Issue, issues)
                counts[binding.repo] = counts.get(binding.repo, 0) + len(issues)
            except Exception as e:
                logger.error(f"Failed to mirror issues for {binding.repo}: {e}")
                errors.append(f"Failed to mirror issues for {binding.repo}: {e}")
        logger.info(f"Mirrored issues: {counts}")
        return {"counts": counts, "errors": errors}

    def run_cycle(self) -> CycleReport:
        """One full pass. Never raises; failures end up in the report."""
        report = CycleReport(started_at=utcnow())
        logger.info("Starting sync cycle")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="hashi-sync") as pool:
            tasks_future = pool.submit(self.populate_tasks)
            issues_future = pool.submit(self.populate_issues)
            # Both sides must be mirrored before anything is reconciled.
            wait([tasks_future, issues_future])

            scope: Optional[TaskScope] = None
            try:
                scope = tasks_future.result()
                report.stats["tasks"] = scope.tasks
                report.errors.extend(scope.errors)
            except Exception as e:
                logger.error(f"Task population failed: {e}")
                report.errors.append(f"Task population failed: {e}")
            try:
                populated = issues_future.result()
                report.stats["issues"] = sum(populated["counts"].values())
                report.errors.extend(populated["errors"])
            except Exception as e:
                logger.error(f"Issue population failed: {e}")
                report.errors.append(f"Issue population failed: {e}")
                scope = None

            if scope is not None:
                self._fan_out(pool, scope, report)

        report.finished_at = utcnow()
        logger.info(f"Sync cycle finished ({report.status}): {report.stats}")
        return report

    def _fan_out(self, pool: ThreadPoolExecutor, scope: TaskScope, report: CycleReport) -> None:
        report.fanned_out = True
        pending = []
        for binding in self.bindings:
            try:
                issues = self._bound_issues(binding, scope)
            except Exception as e:
                logger.error(f"Failed to load mirrored issues for {binding.repo}: {e}")
                report.errors.append(f"Failed to load mirrored issues for {binding.repo}: {e}")
                issues = []
            pending.append((binding, [pool.submit(self._reconcile_isolated, issue) for issue in issues]))

        for binding, futures in pending:
            for future in as_completed(futures):
                report.record(future.result())
            try:
                hooked = self.registrar.ensure_hook(binding)
            except Exception as e:
                logger.error(f"Hook check failed for {binding.repo}: {e}")
                hooked = False
            if not hooked:
                report.stats["hooks_failed"] += 1

    def _bound_issues(self, binding: RepoBinding, scope: TaskScope) -> List[Dict[str, Any]]:
        """Mirrored issues of a binding, stamped with their target project/workspace"""
        target = scope.resolve(binding)
        if target is None:
            logger.debug(
                f"Skipping {binding.repo}: '{binding.workspace}/{binding.project}' is not monitored"
            )
            return []
        p_id, w_id = target
        stamped = []
        for issue in self.mirror.find(Issue, repo_owner=binding.owner, repo_name=binding.name):
            if not binding.matches(issue["repo_owner"], issue["repo_name"], issue.get("assignee_login")):
                continue
            if issue.get("p_id") != p_id or issue.get("w_id") != w_id:
                self.mirror.upsert(Issue, {"id": issue["id"], "p_id": p_id, "w_id": w_id})
            stamped.append(dict(issue, p_id=p_id, w_id=w_id))
        return stamped

    def _reconcile_isolated(self, issue: Dict[str, Any]) -> ReconcileResult:
        """Reconcile one issue without letting its failure escape"""
        try:
            return self.reconciler.reconcile(issue)
        except Exception as e:
            message = f"Failed to reconcile {issue.get('repo_owner')}/{issue.get('repo_name')}#{issue.get('number')}: {e}"
            logger.error(message)
            self.mirror.log_result(SyncAction.FAILED, issue, message=str(e))
            return ReconcileResult(SyncAction.FAILED, error=message)

    def reconcile_one(self, issue: Dict[str, Any]) -> Optional[ReconcileResult]:
        """Reconcile a single (already mirrored) issue, e.g. from a webhook.

        Returns None when the issue's repo/assignee is not bound or its
        workspace/project has not been mirrored yet.
        """
        binding = self.binding_for(issue)
        if binding is None:
            logger.info(
                f"Ignoring {issue.get('repo_owner')}/{issue.get('repo_name')}#{issue.get('number')}: "
                f"not bound for assignee {issue.get('assignee_login')!r}"
            )
            return None

        workspaces = self.mirror.find(Workspace, name=binding.workspace)
        projects = (
            self.mirror.find(Project, name=binding.project, workspace_id=workspaces[0]["id"])
            if workspaces
            else []
        )
        if not projects:
            logger.debug(
                f"Skipping {binding.repo}#{issue.get('number')}: "
                f"'{binding.workspace}/{binding.project}' is not mirrored"
            )
            return None

        p_id, w_id = projects[0]["id"], workspaces[0]["id"]
        self.mirror.upsert(Issue, {"id": issue["id"], "p_id": p_id, "w_id": w_id})
        return self.reconciler.reconcile(dict(issue, p_id=p_id, w_id=w_id))
