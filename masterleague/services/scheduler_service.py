"""
Background worker for Master League.

Runs as its own process (`python manage.py worker`), never inside the web
app. Every job calls the same cooldown-gated services as the cron endpoints,
so the worker and external cron triggers can run side by side.
"""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from masterleague import db
from masterleague.services.fixture_sync_service import (
    check_and_update_recent_fixtures,
    recover_missed_fixtures,
)
from masterleague.services.leaderboard_service import check_leaderboard_integrity
from masterleague.services.safety_service import fix_unprocessed_predictions

logger = logging.getLogger(__name__)


class SchedulerService:
    """Schedules fixture sync, recovery, the safety check and the leaderboard audit"""

    def __init__(self, app=None, scheduler_class=BlockingScheduler):
        self.app = app
        self.scheduler_class = scheduler_class
        self.scheduler = None
        self.job_stats = {}

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Create the scheduler and register jobs"""
        self.app = app
        self.scheduler = self.scheduler_class(timezone="UTC")
        self._add_core_jobs()

    def _add_core_jobs(self):
        config = self.app.config

        # Cheap when nothing is happening: the sync itself applies the cooldowns
        self.scheduler.add_job(
            func=self._run,
            args=["fixture_sync"],
            trigger=IntervalTrigger(seconds=config.get("WORKER_SYNC_INTERVAL", 60)),
            id="fixture_sync",
            name="Sync Recent Fixtures",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        self.scheduler.add_job(
            func=self._run,
            args=["recover_missed"],
            trigger=CronTrigger(hour="*/6", minute=15),
            id="recover_missed",
            name="Recover Missed Fixtures",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=600,
        )

        self.scheduler.add_job(
            func=self._run,
            args=["safety_check"],
            trigger=CronTrigger(hour=config.get("WORKER_SAFETY_HOUR", 3), minute=0),
            id="safety_check",
            name="Fix Unprocessed Predictions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        self.scheduler.add_job(
            func=self._run,
            args=["leaderboard_integrity"],
            trigger=CronTrigger(hour=config.get("WORKER_SAFETY_HOUR", 3), minute=30),
            id="leaderboard_integrity",
            name="Leaderboard Integrity Check",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Worker jobs added")

    def _job_functions(self):
        return {
            "fixture_sync": check_and_update_recent_fixtures,
            "recover_missed": recover_missed_fixtures,
            "safety_check": fix_unprocessed_predictions,
            "leaderboard_integrity": check_leaderboard_integrity,
        }

    def _run(self, job_name, **kwargs):
        """Run one job inside an app context and record the outcome"""
        func = self._job_functions().get(job_name)
        if func is None:
            raise ValueError(f"Unknown job: {job_name}")

        with self.app.app_context():
            try:
                result = func(**kwargs)
                self._update_stats(job_name, True)
                if not result.get("skipped"):
                    logger.info(f"Job {job_name} finished: {_summarize(result)}")
                return result

            except Exception as e:
                db.session.rollback()
                self._update_stats(job_name, False, e)
                logger.error(f"Job {job_name} failed: {e}", exc_info=True)
                return {"success": False, "error": str(e)}

            finally:
                db.session.remove()

    def _update_stats(self, job_name, success, error=None):
        stats = self.job_stats.setdefault(
            job_name, {"runs": 0, "failures": 0, "last_run": None, "last_error": None}
        )
        stats["runs"] += 1
        stats["last_run"] = datetime.now(timezone.utc).isoformat()
        if success:
            stats["last_error"] = None
        else:
            stats["failures"] += 1
            stats["last_error"] = str(error)

    def start(self):
        """Start the scheduler; blocks when using BlockingScheduler"""
        logger.info("Starting worker scheduler")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Worker scheduler stopped")

    def stop(self):
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Worker scheduler shut down")

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        return {
            "is_running": bool(self.scheduler and self.scheduler.running),
            "jobs": jobs,
            "stats": self.job_stats,
        }

    def force_run(self, job_name, **kwargs):
        """Manually run a job now"""
        result = self._run(job_name, **kwargs)
        if result.get("error"):
            return False, f"Manual {job_name} failed: {result['error']}"
        return True, f"Manual {job_name} completed"


def _summarize(result):
    keys = ("checked", "updated", "predictions_processed", "predictions_fixed")
    parts = [f"{key}={result[key]}" for key in keys if key in result]
    if result.get("errors"):
        parts.append(f"errors={len(result['errors'])}")
    return " ".join(parts) or "ok"
