from datetime import datetime, timezone

from masterleague import db
from masterleague.utils.scoring import is_valid_prediction


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    fixture_id = db.Column(db.Integer, db.ForeignKey("fixtures.id"), nullable=False)

    predicted_home_score = db.Column(db.Integer, nullable=False)
    predicted_away_score = db.Column(db.Integer, nullable=False)

    # Results (calculated after the fixture finishes)
    points = db.Column(db.Integer)
    is_processed = db.Column(db.Boolean, nullable=False, default=False)
    processed_at = db.Column(db.DateTime(timezone=True))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "fixture_id", name="unique_user_fixture_prediction"),
        db.Index("idx_prediction_fixture", "fixture_id"),
        db.Index("idx_prediction_user", "user_id"),
        db.Index("idx_prediction_processed", "fixture_id", "is_processed"),
        db.CheckConstraint(
            "predicted_home_score >= 0 AND predicted_away_score >= 0",
            name="non_negative_prediction",
        ),
    )

    def __repr__(self):
        return (
            f"<Prediction user_id={self.user_id} fixture_id={self.fixture_id} "
            f"{self.predicted_home_score}-{self.predicted_away_score}>"
        )

    @property
    def week(self):
        """Get the week number from the associated fixture"""
        return self.fixture.week if self.fixture else None

    @property
    def result_type(self):
        """exact / outcome / miss, or None until the fixture has a result"""
        from masterleague.utils.scoring import classify_prediction

        if not self.fixture or not self.fixture.is_finished:
            return None
        return classify_prediction(
            self.predicted_home_score,
            self.predicted_away_score,
            self.fixture.home_score,
            self.fixture.away_score,
        )

    @staticmethod
    def get_for_user_week(user_id, season_id, week):
        """Get a user's predictions for one week"""
        from .fixture import Fixture

        return (
            Prediction.query.join(Fixture)
            .filter(
                Prediction.user_id == user_id,
                Fixture.season_id == season_id,
                Fixture.week == week,
            )
            .order_by(Fixture.match_date, Fixture.id)
            .all()
        )

    @staticmethod
    def upsert(user_id, fixture, home_score, away_score):
        """
        Create or update a prediction before kickoff.

        Returns (prediction, message); prediction is None when rejected.
        """
        if not is_valid_prediction(home_score, away_score):
            return None, "Scores must be non-negative whole numbers"
        if fixture.has_started():
            return None, "Fixture has already started"

        prediction = Prediction.query.filter_by(
            user_id=user_id, fixture_id=fixture.id
        ).first()

        if prediction:
            prediction.predicted_home_score = home_score
            prediction.predicted_away_score = away_score
            return prediction, "Prediction updated"

        prediction = Prediction(
            user_id=user_id,
            fixture_id=fixture.id,
            predicted_home_score=home_score,
            predicted_away_score=away_score,
        )
        db.session.add(prediction)
        return prediction, "Prediction created"

    def to_dict(self, include_fixture=False):
        """Convert prediction to dictionary for API responses"""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "fixture_id": self.fixture_id,
            "week": self.week,
            "predicted_home_score": self.predicted_home_score,
            "predicted_away_score": self.predicted_away_score,
            "points": self.points,
            "is_processed": self.is_processed,
            "result_type": self.result_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

        if include_fixture:
            data["fixture"] = self.fixture.to_dict() if self.fixture else None

        return data
