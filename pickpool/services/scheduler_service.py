"""
Periodic leaderboard reconciliation

Runs a full, idempotent rebuild of every leaderboard on an interval using
APScheduler, repairing any scope an earlier recompute left behind.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile_leaderboards"


class SchedulerService:
    """Manages the background reconciliation job"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.reconcile_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats(last_run=None):
        return {
            "last_run": last_run,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "last_summary": None,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_jobs()
        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduler started successfully")

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_jobs(self):
        interval = self.app.config.get("RECONCILE_INTERVAL_MINUTES", 30)
        self.scheduler.add_job(
            func=self._reconcile,
            trigger=IntervalTrigger(minutes=interval),
            id=RECONCILE_JOB_ID,
            name="Reconcile Leaderboards",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )
        logger.info(f"Reconciliation scheduled every {interval} minutes")

    def _reconcile(self):
        """Full rebuild inside an app context; failures are recorded, not raised"""
        from pickpool.services.recompute_coordinator import recompute_coordinator

        with self.app.app_context():
            try:
                batch = recompute_coordinator.rebuild()
            except Exception as e:
                # Keep the job alive for the next interval
                logger.error(f"Leaderboard reconciliation failed: {e}")
                self._update_stats(False, error=str(e))
                return None

            self._update_stats(batch.succeeded, summary=batch.summary())
            return batch

    def _update_stats(self, success, summary=None, error=None):
        self.reconcile_stats["last_run"] = datetime.now(timezone.utc)
        self.reconcile_stats["total_runs"] += 1
        self.reconcile_stats["last_summary"] = summary

        if success:
            self.reconcile_stats["successful_runs"] += 1
            self.reconcile_stats["last_error"] = None
        else:
            self.reconcile_stats["failed_runs"] += 1
            self.reconcile_stats["last_error"] = error or (
                summary and summary.get("failures")
            )

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.reconcile_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}


# Global scheduler instance
scheduler_service = SchedulerService()
