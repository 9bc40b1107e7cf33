"""Background scheduler for periodic sync"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from hashi.services.orchestrator import CycleReport, SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs sync cycles back to back, `interval_minutes` apart.

    Each cycle re-arms a one-shot job when it finishes (successfully or
    not), so a slow cycle pushes the next one back instead of piling up.
    Webhook reconciles run on the same executor but outside that chain.
    """

    CYCLE_JOB_ID = "sync_cycle"

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_minutes: int = 10,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.orchestrator = orchestrator
        self.interval = timedelta(minutes=interval_minutes)
        self.scheduler = scheduler or BackgroundScheduler()
        self.last_report: Optional[CycleReport] = None

    def start(self):
        """Start the scheduler and run the first cycle right away"""
        self.scheduler.start()
        logger.info("Sync scheduler started")
        self.arm(timedelta(0))

    def stop(self):
        """Stop the scheduler"""
        self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    def arm(self, delay: timedelta):
        """(Re)schedule the next cycle `delay` from now"""
        run_date = datetime.now(timezone.utc) + delay
        self.scheduler.add_job(
            func=self._cycle_job,
            trigger=DateTrigger(run_date=run_date),
            id=self.CYCLE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            # A late wake-up must still run the cycle, or the chain ends here.
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug(f"Next sync cycle at {run_date.isoformat()}")

    def trigger_now(self):
        """Pull the next cycle forward to now"""
        self.arm(timedelta(0))

    def submit_reconcile(self, issue: Dict[str, Any]):
        """Reconcile one issue on the executor, independent of the cycle timer"""
        self.scheduler.add_job(
            func=self._reconcile_job, args=[issue], misfire_grace_time=None, coalesce=True
        )

    def status(self) -> Dict[str, Any]:
        job = self.scheduler.get_job(self.CYCLE_JOB_ID)
        return {
            "running": bool(self.scheduler.running),
            "next_run_at": getattr(job, "next_run_time", None),
            "last_cycle": self.last_report.as_dict() if self.last_report else None,
        }

    def _cycle_job(self):
        """Job function for one full cycle"""
        try:
            self.last_report = self.orchestrator.run_cycle()
        except Exception as e:
            logger.error(f"Sync cycle failed: {e}")
        finally:
            self.arm(self.interval)

    def _reconcile_job(self, issue: Dict[str, Any]):
        """Job function for a webhook-triggered reconcile"""
        ref = f"{issue.get('repo_owner')}/{issue.get('repo_name')}#{issue.get('number')}"
        try:
            result = self.orchestrator.reconcile_one(issue)
            if result is not None:
                logger.info(f"Webhook reconcile of {ref}: {result.action.value}")
        except Exception as e:
            logger.error(f"Webhook reconcile of {ref} failed: {e}")
