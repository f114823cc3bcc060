from datetime import datetime, timezone

from masterleague import db
from masterleague.utils.fixture_status import FINISHED, LIVE, SCHEDULED, map_api_status


class Fixture(db.Model):
    __tablename__ = "fixtures"

    id = db.Column(db.Integer, primary_key=True)

    # External ID for API integration (football-data.org match id)
    external_id = db.Column(db.Integer, unique=True, nullable=False, index=True)

    # Fixture identification
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)  # Matchday

    # Teams
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    # Kickoff, stored in UTC
    match_date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Raw status as reported by the API (see utils/fixture_status.py)
    status = db.Column(db.String(20), nullable=False, default="SCHEDULED")

    # Scores, unknown until the fixture has started
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    points_multiplier = db.Column(db.Integer, nullable=False, default=1)

    last_synced_at = db.Column(db.DateTime(timezone=True))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="fixture", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_fixture_season_week", "season_id", "week"),
        db.Index("idx_fixture_match_date", "match_date"),
        db.Index("idx_fixture_status", "status"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
        db.CheckConstraint("points_multiplier >= 1", name="positive_multiplier"),
    )

    def __repr__(self):
        home = self.home_team.tla if self.home_team else "TBD"
        away = self.away_team.tla if self.away_team else "TBD"
        return f"<Fixture {home} v {away} Week {self.week}>"

    @property
    def state(self):
        """SCHEDULED, LIVE or FINISHED"""
        return map_api_status(self.status)

    @property
    def is_finished(self):
        return self.state == FINISHED

    @property
    def has_result(self):
        """Both scores are known"""
        return self.home_score is not None and self.away_score is not None

    @property
    def is_scoreable(self):
        """Finished with a result, so predictions can be scored"""
        return self.is_finished and self.has_result

    def has_started(self):
        """Check if the fixture has kicked off"""
        if self.state != SCHEDULED:
            return True
        if not self.match_date:
            return False

        from masterleague.utils.timezone_utils import ensure_utc

        return datetime.now(timezone.utc) >= ensure_utc(self.match_date)

    def is_predictable(self):
        """Predictions are accepted until kickoff"""
        return not self.has_started()

    @staticmethod
    def get_fixtures_for_week(season_id, week):
        """Get all fixtures for a specific week with eager loading"""
        from sqlalchemy.orm import joinedload

        return (
            Fixture.query.filter_by(season_id=season_id, week=week)
            .options(joinedload(Fixture.home_team), joinedload(Fixture.away_team))
            .order_by(Fixture.match_date, Fixture.id)
            .all()
        )

    @staticmethod
    def get_by_external_id(external_id):
        return Fixture.query.filter_by(external_id=external_id).first()

    def to_dict(self, include_prediction_count=False):
        """Convert fixture to dictionary for API responses"""
        from masterleague.utils.timezone_utils import ensure_utc, format_kickoff

        data = {
            "id": self.id,
            "external_id": self.external_id,
            "season_id": self.season_id,
            "week": self.week,
            "match_date": (
                ensure_utc(self.match_date).isoformat() if self.match_date else None
            ),
            "kickoff_local": format_kickoff(self.match_date),
            "home_team": self.home_team.to_dict() if self.home_team else None,
            "away_team": self.away_team.to_dict() if self.away_team else None,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "state": self.state,
            "points_multiplier": self.points_multiplier,
            "is_predictable": self.is_predictable(),
            "last_synced_at": (
                ensure_utc(self.last_synced_at).isoformat()
                if self.last_synced_at
                else None
            ),
        }

        if include_prediction_count:
            data["prediction_count"] = self.predictions.count()

        return data
