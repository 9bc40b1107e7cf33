import logging
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

from apscheduler.triggers.date import DateTrigger

from hashi.scheduler import SyncScheduler

logging.disable(logging.CRITICAL)


class SyncSchedulerTests(unittest.TestCase):
    def setUp(self):
        self.orchestrator = Mock()
        self.backend = Mock()
        self.scheduler = SyncScheduler(self.orchestrator, interval_minutes=5, scheduler=self.backend)

    def test_start_runs_first_cycle_immediately(self):
        self.scheduler.start()

        self.backend.start.assert_called_once_with()
        kwargs = self.backend.add_job.call_args.kwargs
        self.assertEqual(kwargs["id"], SyncScheduler.CYCLE_JOB_ID)
        self.assertIsInstance(kwargs["trigger"], DateTrigger)
        self.assertTrue(kwargs["replace_existing"])
        self.assertEqual(kwargs["max_instances"], 1)
        self.assertIsNone(kwargs["misfire_grace_time"])

    def test_cycle_rearms_after_interval(self):
        report = Mock()
        self.orchestrator.run_cycle.return_value = report
        self.scheduler.arm = Mock()

        self.scheduler._cycle_job()

        self.assertIs(self.scheduler.last_report, report)
        self.scheduler.arm.assert_called_once_with(timedelta(minutes=5))

    def test_cycle_rearms_even_when_cycle_raises(self):
        self.orchestrator.run_cycle.side_effect = RuntimeError("boom")
        self.scheduler.arm = Mock()

        self.scheduler._cycle_job()

        self.scheduler.arm.assert_called_once_with(timedelta(minutes=5))
        self.assertIsNone(self.scheduler.last_report)

    def test_trigger_now_replaces_pending_cycle(self):
        self.scheduler.trigger_now()
        self.assertEqual(self.backend.add_job.call_args.kwargs["id"], SyncScheduler.CYCLE_JOB_ID)

    def test_submit_reconcile_queues_one_off_job(self):
        issue = {"id": 1, "number": 42, "repo_owner": "acme", "repo_name": "widgets"}
        self.scheduler.submit_reconcile(issue)

        kwargs = self.backend.add_job.call_args.kwargs
        self.assertEqual(kwargs["args"], [issue])
        self.assertNotIn("id", kwargs)
        self.assertIsNone(kwargs["misfire_grace_time"])

        kwargs["func"](*kwargs["args"])
        self.orchestrator.reconcile_one.assert_called_once_with(issue)

    def test_reconcile_job_contains_errors(self):
        self.orchestrator.reconcile_one.side_effect = ConnectionError("reset")
        # Must not raise into the executor.
        self.scheduler._reconcile_job({"number": 42})

    def test_status(self):
        self.backend.running = True
        self.backend.get_job.return_value = SimpleNamespace(next_run_time="soon")
        report = Mock()
        report.as_dict.return_value = {"status": "success"}
        self.scheduler.last_report = report

        self.assertEqual(
            self.scheduler.status(),
            {"running": True, "next_run_at": "soon", "last_cycle": {"status": "success"}},
        )

    def test_stop(self):
        self.scheduler.stop()
        self.backend.shutdown.assert_called_once_with(wait=False)


class LateWakeUpTests(unittest.TestCase):
    def test_overdue_cycle_still_runs_and_rearms(self):
        from apscheduler.schedulers.background import BackgroundScheduler

        ran = threading.Event()
        orchestrator = Mock()
        orchestrator.run_cycle.side_effect = lambda: ran.set()
        backend = BackgroundScheduler()
        scheduler = SyncScheduler(orchestrator, interval_minutes=5, scheduler=backend)
        backend.start()
        try:
            # Run date already well past the default one-second grace window.
            scheduler.arm(timedelta(seconds=-5))

            self.assertTrue(ran.wait(5))
            # The finished cycle re-arms itself one interval ahead.
            later = datetime.now(timezone.utc) + timedelta(minutes=4)
            deadline = time.monotonic() + 5
            rearmed = False
            while not rearmed and time.monotonic() < deadline:
                job = backend.get_job(SyncScheduler.CYCLE_JOB_ID)
                rearmed = job is not None and job.next_run_time > later
                if not rearmed:
                    time.sleep(0.05)
            self.assertTrue(rearmed)
            orchestrator.run_cycle.assert_called_once_with()
        finally:
            backend.shutdown(wait=False)


if __name__ == "__main__":
    unittest.main()
