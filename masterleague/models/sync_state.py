from datetime import datetime, timezone

from masterleague import db


class SyncState(db.Model):
    """
    Last-run bookkeeping for background jobs.

    Persisting the timestamps keeps cooldowns intact across processes and
    restarts, which in-memory counters would not.
    """

    __tablename__ = "sync_state"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(50), unique=True, nullable=False, index=True)

    last_run_at = db.Column(db.DateTime(timezone=True))
    last_success_at = db.Column(db.DateTime(timezone=True))
    run_count = db.Column(db.Integer, default=0)
    consecutive_failures = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text)
    last_result = db.Column(db.JSON)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<SyncState {self.job_name}>"

    @staticmethod
    def get(job_name):
        """Get the state row for a job, creating it on first use"""
        state = SyncState.query.filter_by(job_name=job_name).first()
        if state is None:
            state = SyncState(job_name=job_name, run_count=0, consecutive_failures=0)
            db.session.add(state)
            db.session.flush()
        return state

    def seconds_since_last_run(self, now=None):
        """None when the job has never run"""
        if self.last_run_at is None:
            return None

        from masterleague.utils.timezone_utils import ensure_utc

        now = ensure_utc(now or datetime.now(timezone.utc))
        return (now - ensure_utc(self.last_run_at)).total_seconds()

    def mark_run(self, now=None):
        self.last_run_at = now or datetime.now(timezone.utc)
        self.run_count = (self.run_count or 0) + 1

    def record_result(self, success, result=None, error=None):
        """Record the outcome of a run"""
        if success:
            self.last_success_at = datetime.now(timezone.utc)
            self.consecutive_failures = 0
            self.last_error = None
        else:
            self.consecutive_failures = (self.consecutive_failures or 0) + 1
            self.last_error = str(error) if error else None
        if result is not None:
            self.last_result = result

    def to_dict(self):
        from masterleague.utils.timezone_utils import ensure_utc

        return {
            "job_name": self.job_name,
            "last_run_at": (
                ensure_utc(self.last_run_at).isoformat() if self.last_run_at else None
            ),
            "last_success_at": (
                ensure_utc(self.last_success_at).isoformat()
                if self.last_success_at
                else None
            ),
            "run_count": self.run_count,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_result": self.last_result,
        }
