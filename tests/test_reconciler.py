import logging
import threading
import time
import unittest
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

logging.disable(logging.CRITICAL)

ISSUE_URL = "https://github.com/acme/widgets/issues/42"


def _memory_mirror():
    from hashi.models.base import init_db
    from hashi.services.mirror import LocalMirror

    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    init_db(bind=engine)
    return LocalMirror(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))


def _issue(**overrides):
    issue = {
        "id": 5001,
        "number": 42,
        "title": "Fix crash",
        "body": "NPE on load",
        "state": "open",
        "assignee_login": "alice",
        "repo_owner": "acme",
        "repo_name": "widgets",
        "url": ISSUE_URL,
        "closed_at": None,
        "p_id": "10",
        "w_id": "1",
    }
    issue.update(overrides)
    return issue


class _FakeAsana:
    """Stands in for AsanaClient; echoes what it was sent like the real API."""

    def __init__(self, create_error=None, update_error=None):
        self.created = []
        self.updates = []
        self.create_error = create_error
        self.update_error = update_error
        self._next_gid = 100

    def create_task(self, payload):
        self.created.append(payload)
        if self.create_error:
            raise self.create_error
        gid = str(self._next_gid)
        self._next_gid += 1
        return {
            "id": gid,
            "name": payload["name"],
            "notes": payload["notes"],
            "completed": payload["completed"],
            "completed_at": None,
            "assignee_status": payload["assignee_status"],
            "project_ids": list(payload["projects"]),
            "workspace_id": payload["workspace"],
            "due_on": None,
            "created_at": datetime(2025, 1, 1),
            "modified_at": datetime(2025, 1, 1),
        }

    def update_task(self, task_id, fields):
        self.updates.append((task_id, dict(fields)))
        if self.update_error:
            raise self.update_error
        return {"id": task_id, **{k: v for k, v in fields.items() if k != "completed_at"}}


class ReconcilerTests(unittest.TestCase):
    def setUp(self):
        from hashi.services.reconciler import Reconciler

        self.mirror = _memory_mirror()
        self.asana = _FakeAsana()
        self.reconciler = Reconciler(self.asana, self.mirror)

    def test_scenario_create_then_close(self):
        from hashi.models import SyncAction, Task

        first = self.reconciler.reconcile(_issue())

        self.assertEqual(first.action, SyncAction.CREATED)
        self.assertEqual(
            self.asana.created,
            [
                {
                    "name": "Fix crash",
                    "notes": f"(GH 42)\nNPE on load\n{ISSUE_URL}",
                    "completed": False,
                    "assignee": "me",
                    "assignee_status": "inbox",
                    "projects": ["10"],
                    "workspace": "1",
                }
            ],
        )
        mirrored = self.mirror.get(Task, first.task["id"])
        self.assertEqual(mirrored["name"], "Fix crash")
        self.assertEqual(mirrored["project_ids"], ["10"])
        self.assertEqual(mirrored["workspace_id"], "1")

        closed_at = datetime(2025, 3, 1, 12, 0)
        second = self.reconciler.reconcile(_issue(state="closed", closed_at=closed_at))

        self.assertEqual(second.action, SyncAction.UPDATED)
        self.assertEqual(second.changed_fields, ["completed", "completed_at"])
        self.assertEqual(
            self.asana.updates, [(first.task["id"], {"completed": True, "completed_at": closed_at})]
        )
        mirrored = self.mirror.get(Task, first.task["id"])
        self.assertTrue(mirrored["completed"])
        self.assertEqual(mirrored["completed_at"], closed_at)
        self.assertEqual(len(self.asana.created), 1)

    def test_second_reconcile_of_unchanged_issue_is_noop(self):
        from hashi.models import SyncAction

        self.reconciler.reconcile(_issue())
        again = self.reconciler.reconcile(_issue())

        self.assertEqual(again.action, SyncAction.NOOP)
        self.assertEqual(self.asana.updates, [])
        self.assertEqual(len(self.asana.created), 1)

    def test_links_to_preexisting_task_instead_of_creating(self):
        from hashi.models import SyncAction, Task

        self.mirror.upsert(
            Task,
            {"id": "77", "name": "Fix crash", "notes": f"(gh 42)\nNPE on load\n{ISSUE_URL}"},
        )
        result = self.reconciler.reconcile(_issue())

        self.assertEqual(result.action, SyncAction.UPDATED)
        self.assertEqual(result.task["id"], "77")
        # Only the tag's case differs; notes are rewritten to the canonical form.
        self.assertEqual(self.asana.updates, [("77", {"notes": f"(GH 42)\nNPE on load\n{ISSUE_URL}"})])
        self.assertEqual(self.asana.created, [])

    def test_title_change_stages_only_name(self):
        from hashi.models import SyncAction

        self.reconciler.reconcile(_issue())
        result = self.reconciler.reconcile(_issue(title="Fix crash on startup"))

        self.assertEqual(result.action, SyncAction.UPDATED)
        self.assertEqual(result.changed_fields, ["name"])
        self.assertEqual(self.asana.updates[0][1], {"name": "Fix crash on startup"})
        self.assertEqual(result.task["name"], "Fix crash on startup")

    def test_body_change_stages_notes(self):
        self.reconciler.reconcile(_issue())
        result = self.reconciler.reconcile(_issue(body="NPE on load, see logs"))

        self.assertEqual(result.changed_fields, ["notes"])
        self.assertEqual(
            self.asana.updates[0][1], {"notes": f"(GH 42)\nNPE on load, see logs\n{ISSUE_URL}"}
        )

    def test_completed_task_is_never_reopened(self):
        from hashi.models import SyncAction, Task

        created = self.reconciler.reconcile(_issue())
        self.mirror.upsert(Task, {"id": created.task["id"], "completed": True})

        result = self.reconciler.reconcile(_issue(state="open"))

        self.assertEqual(result.action, SyncAction.NOOP)
        self.assertEqual(self.asana.updates, [])
        self.assertTrue(self.mirror.get(Task, created.task["id"])["completed"])

    def test_reopened_issue_after_close_does_not_touch_task(self):
        from hashi.models import SyncAction

        self.reconciler.reconcile(_issue())
        self.reconciler.reconcile(_issue(state="closed", closed_at=datetime(2025, 3, 1)))
        result = self.reconciler.reconcile(_issue(state="open", closed_at=None))

        self.assertEqual(result.action, SyncAction.NOOP)
        self.assertEqual(len(self.asana.updates), 1)

    def test_create_error_envelope_becomes_failed_result(self):
        from hashi.errors import AsanaApplicationError
        from hashi.models import SyncAction, Task
        from hashi.services.reconciler import Reconciler

        asana = _FakeAsana(create_error=AsanaApplicationError("projects: Not a recognized ID: 10"))
        result = Reconciler(asana, self.mirror).reconcile(_issue())

        self.assertEqual(result.action, SyncAction.FAILED)
        self.assertFalse(result.ok)
        self.assertIn("Fix crash", result.error)
        self.assertIn("Not a recognized ID", result.error)
        self.assertEqual(self.mirror.find(Task), [])
        logs = self.mirror.recent_logs()
        self.assertEqual(logs[0]["action"], SyncAction.FAILED)

    def test_update_error_leaves_mirror_untouched(self):
        from hashi.errors import AsanaApplicationError
        from hashi.models import SyncAction, Task
        from hashi.services.reconciler import Reconciler

        created = self.reconciler.reconcile(_issue())
        asana = _FakeAsana(update_error=AsanaApplicationError("name: too long"))
        result = Reconciler(asana, self.mirror).reconcile(
            _issue(title="x" * 10, state="closed", closed_at=datetime(2025, 3, 1))
        )

        self.assertEqual(result.action, SyncAction.FAILED)
        self.assertIn(created.task["id"], result.error)
        self.assertIn("too long", result.error)
        # One remote call carrying every staged field.
        self.assertEqual(len(asana.updates), 1)
        self.assertEqual(set(asana.updates[0][1]), {"name", "completed", "completed_at"})
        mirrored = self.mirror.get(Task, created.task["id"])
        self.assertEqual(mirrored["name"], "Fix crash")
        self.assertFalse(mirrored["completed"])

    def test_transport_errors_propagate(self):
        from hashi.services.reconciler import Reconciler

        asana = _FakeAsana(create_error=ConnectionError("connection reset"))
        with self.assertRaises(ConnectionError):
            Reconciler(asana, self.mirror).reconcile(_issue())

    def test_unresolved_target_is_an_inconsistency(self):
        from hashi.errors import LocalInconsistencyError

        with self.assertRaises(LocalInconsistencyError):
            self.reconciler.reconcile(_issue(p_id=None))
        self.assertEqual(self.asana.created, [])

    def test_created_and_updated_outcomes_are_logged(self):
        from hashi.models import SyncAction

        self.reconciler.reconcile(_issue())
        self.reconciler.reconcile(_issue(title="New"))
        self.reconciler.reconcile(_issue(title="New"))

        actions = sorted(log["action"].value for log in self.mirror.recent_logs())
        self.assertEqual(actions, [SyncAction.CREATED.value, SyncAction.UPDATED.value])


class _SlowLinker:
    """Linker over an in-memory task list that pauses to widen race windows."""

    def __init__(self):
        self.tasks = []

    def find_linked_task(self, issue):
        time.sleep(0.05)
        tag = f"(gh {issue['number']})"
        for task in self.tasks:
            if tag in task["notes"].lower():
                return task
        return None


class _ListMirror:
    def __init__(self, linker):
        self.linker = linker

    def upsert(self, model, record):
        self.linker.tasks = [t for t in self.linker.tasks if t["id"] != record["id"]] + [dict(record)]
        return dict(record)

    def log_result(self, *args, **kwargs):
        pass


class ConcurrentReconcileTests(unittest.TestCase):
    def test_racing_reconciles_of_one_issue_create_a_single_task(self):
        from hashi.services.reconciler import Reconciler

        linker = _SlowLinker()
        asana = _FakeAsana()
        reconciler = Reconciler(asana, _ListMirror(linker), linker=linker)

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(reconciler.reconcile(_issue())))
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(asana.created), 1)
        self.assertEqual(len(results), 4)
        self.assertEqual(len(reconciler.locks), 0)


if __name__ == "__main__":
    unittest.main()
