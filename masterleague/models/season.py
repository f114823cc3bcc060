from datetime import datetime, timedelta, timezone

from masterleague import db
from masterleague.utils.fixture_status import FINISHED_STATUSES, LIVE_STATUSES


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True, index=True)
    name = db.Column(db.String(80), nullable=False)  # e.g., "2025-26 Premier League"

    # Season dates
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    total_weeks = db.Column(db.Integer, default=38, nullable=False)

    # Status
    is_active = db.Column(db.Boolean, default=False)
    current_week = db.Column(db.Integer, default=1)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    fixtures = db.relationship(
        "Fixture", backref="season", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_season_active", "is_active"),
        db.Index("idx_season_dates", "start_date", "end_date"),
    )

    def __repr__(self):
        return f"<Season {self.year}>"

    @staticmethod
    def get_current_season():
        """Get the currently active season"""
        return Season.query.filter_by(is_active=True).first()

    @staticmethod
    def create_season(year, start_date, end_date, total_weeks=38):
        """Create a new season"""
        season = Season(
            year=year,
            name=f"{year}-{str(year + 1)[-2:]} Premier League",
            start_date=start_date,
            end_date=end_date,
            total_weeks=total_weeks,
        )
        db.session.add(season)
        return season

    def activate(self):
        """Activate this season (deactivates all others)"""
        Season.query.update({"is_active": False})
        self.is_active = True
        db.session.commit()

    def _clamp_week(self, week):
        return min(max(week, 1), self.total_weeks)

    def calculate_current_week(self):
        """
        Determine the current week from fixture data.

        A week with a live fixture is current. Otherwise the current week is the
        one after the highest week whose fixtures are all finished.
        """
        from .fixture import Fixture

        live = (
            Fixture.query.filter(
                Fixture.season_id == self.id, Fixture.status.in_(LIVE_STATUSES)
            )
            .order_by(Fixture.week)
            .first()
        )
        if live:
            return self._clamp_week(live.week)

        rows = (
            db.session.query(
                Fixture.week,
                db.func.count(Fixture.id),
                db.func.sum(
                    db.case((Fixture.status.in_(FINISHED_STATUSES), 1), else_=0)
                ),
            )
            .filter(Fixture.season_id == self.id)
            .group_by(Fixture.week)
            .all()
        )
        if not rows:
            return 1

        highest_completed = 0
        for week, total, finished in rows:
            if total and (finished or 0) == total:
                highest_completed = max(highest_completed, week)

        return self._clamp_week(highest_completed + 1)

    def update_current_week(self):
        """Update the current_week field based on the fixture data"""
        calculated_week = self.calculate_current_week()
        if calculated_week != self.current_week:
            self.current_week = calculated_week
            db.session.commit()
        return self.current_week

    def get_leaderboard_week(self, now=None):
        """
        Week shown on the leaderboard: the previous week until the first
        fixture of the current week is about to kick off.
        """
        from .fixture import Fixture
        from masterleague.utils.timezone_utils import ensure_utc

        current_week = self.calculate_current_week()
        if current_week <= 1:
            return 1

        week_fixtures = Fixture.get_fixtures_for_week(self.id, current_week)
        if not week_fixtures:
            return max(current_week - 1, 1)

        if any(fixture.state != "SCHEDULED" for fixture in week_fixtures):
            return current_week

        now = ensure_utc(now or datetime.now(timezone.utc))
        first_kickoff = min(ensure_utc(f.match_date) for f in week_fixtures)
        if first_kickoff <= now + timedelta(hours=1):
            return current_week

        return max(current_week - 1, 1)

    def get_available_weeks(self):
        """Weeks that have at least one fixture"""
        from .fixture import Fixture

        rows = (
            db.session.query(Fixture.week)
            .filter(Fixture.season_id == self.id)
            .distinct()
            .order_by(Fixture.week)
            .all()
        )
        return [row[0] for row in rows]

    def to_dict(self):
        """Convert season to dictionary for API responses"""
        return {
            "id": self.id,
            "year": self.year,
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
            "current_week": self.current_week,
            "total_weeks": self.total_weeks,
        }
