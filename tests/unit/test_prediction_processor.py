"""
Unit tests for prediction processing
"""

from unittest.mock import patch

import pytest

from masterleague import db
from masterleague.models import LeaderboardEntry, Prediction
from masterleague.services.prediction_processor import (
    get_fixtures_with_unprocessed_predictions,
    process_predictions_for_fixture,
    update_predictions,
)


@pytest.fixture
def finished_fixture(make_fixture):
    return make_fixture(status="FINISHED", home_score=2, away_score=1, hours_from_now=-30)


@pytest.fixture
def three_predictions(finished_fixture, make_user, make_prediction):
    exact = make_prediction(make_user(), finished_fixture, 2, 1)
    outcome = make_prediction(make_user(), finished_fixture, 1, 0)
    miss = make_prediction(make_user(), finished_fixture, 0, 0)
    return exact, outcome, miss


class TestProcessPredictionsForFixture:
    """Scoring all predictions of one fixture."""

    def test_scores_each_prediction(self, finished_fixture, three_predictions):
        result = process_predictions_for_fixture(finished_fixture.id)

        exact, outcome, miss = three_predictions
        assert (exact.points, outcome.points, miss.points) == (3, 1, 0)
        assert all(p.is_processed for p in three_predictions)
        assert all(p.processed_at is not None for p in three_predictions)

        assert result["processed"] == 3
        assert result["points_allocated"] == 4
        assert result["users_affected"] == 3
        assert result["changed"] == 3
        assert "skipped" not in result

    def test_applies_multiplier(self, make_fixture, make_user, make_prediction):
        fixture = make_fixture(
            status="FINISHED", home_score=0, away_score=0, multiplier=2, hours_from_now=-5
        )
        exact = make_prediction(make_user(), fixture, 0, 0)
        outcome = make_prediction(make_user(), fixture, 3, 3)

        result = process_predictions_for_fixture(fixture.id)

        assert exact.points == 6
        assert outcome.points == 2
        assert result["points_allocated"] == 8

    def test_idempotent(self, finished_fixture, three_predictions):
        process_predictions_for_fixture(finished_fixture.id)
        before = [p.points for p in three_predictions]

        result = process_predictions_for_fixture(finished_fixture.id)

        assert [p.points for p in three_predictions] == before
        assert result["processed"] == 3
        assert result["changed"] == 0

    def test_corrected_result_rescores(self, finished_fixture, three_predictions):
        process_predictions_for_fixture(finished_fixture.id)

        finished_fixture.home_score = 1
        finished_fixture.away_score = 0
        db.session.commit()
        result = process_predictions_for_fixture(finished_fixture.id)

        exact, outcome, miss = three_predictions
        assert (exact.points, outcome.points, miss.points) == (1, 3, 0)
        assert result["changed"] == 2

    def test_not_finished_is_skipped(self, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="IN_PLAY", home_score=1, away_score=0, hours_from_now=-1)
        prediction = make_prediction(make_user(), fixture, 1, 0)

        result = process_predictions_for_fixture(fixture.id)

        assert result["skipped"] == "not_finished"
        assert result["processed"] == 0
        assert prediction.points is None
        assert prediction.is_processed is False

    def test_finished_without_score_is_skipped(self, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", hours_from_now=-3)
        make_prediction(make_user(), fixture, 1, 0)

        result = process_predictions_for_fixture(fixture.id)

        assert result["skipped"] == "not_finished"

    def test_unknown_fixture(self, app):
        result = process_predictions_for_fixture(987654)
        assert result["skipped"] == "not_found"

    def test_failure_rolls_back(self, finished_fixture, three_predictions):
        with patch.object(db.session, "commit", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                process_predictions_for_fixture(finished_fixture.id)

        for prediction in Prediction.query.filter_by(fixture_id=finished_fixture.id):
            assert prediction.is_processed is False
            assert prediction.points is None


class TestUnprocessedLookup:
    """Finding fixtures that still need scoring."""

    def test_only_finished_fixtures_with_unprocessed_predictions(
        self, make_fixture, make_user, make_prediction
    ):
        user = make_user()
        pending = make_fixture(status="FINISHED", home_score=1, away_score=1, hours_from_now=-30)
        done = make_fixture(status="FINISHED", home_score=0, away_score=2, hours_from_now=-50)
        live = make_fixture(status="IN_PLAY", home_score=0, away_score=0, hours_from_now=-1)
        make_prediction(user, pending, 1, 1)
        make_prediction(user, done, 0, 1)
        make_prediction(user, live, 2, 0)
        process_predictions_for_fixture(done.id)

        fixtures = get_fixtures_with_unprocessed_predictions()

        assert [f.id for f in fixtures] == [pending.id]


class TestUpdatePredictions:
    """Season-wide scoring pass."""

    def test_scores_season_and_rebuilds_leaderboards(
        self, season, make_fixture, make_user, make_prediction
    ):
        user = make_user()
        first = make_fixture(status="FINISHED", home_score=1, away_score=0, hours_from_now=-60)
        second = make_fixture(status="FINISHED", home_score=2, away_score=2, hours_from_now=-30)
        make_prediction(user, first, 1, 0)
        make_prediction(user, second, 1, 1)

        result = update_predictions(season_id=season.id)

        assert result["success"] is True
        assert result["fixtures_processed"] == 2
        assert result["predictions_processed"] == 2
        assert result["points_allocated"] == 4

        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=user.id).one()
        assert entry.total_points == 4
        assert entry.rank == 1

    def test_no_active_season(self, app):
        result = update_predictions()
        assert result["success"] is False
        assert result["error"] == "No active season"


class TestPredictionUpsert:
    """Saving a prediction through the model."""

    def test_creates_then_updates(self, make_fixture, make_user):
        user = make_user()
        fixture = make_fixture()

        prediction, message = Prediction.upsert(user.id, fixture, 1, 1)
        db.session.commit()
        assert message == "Prediction created"

        again, message = Prediction.upsert(user.id, fixture, 3, 0)
        assert again is prediction
        assert message == "Prediction updated"

    def test_rejects_invalid_scores(self, make_fixture, make_user):
        user = make_user()
        fixture = make_fixture()

        for home, away in [(-1, 0), (1.5, 0), (True, 1), (None, 2)]:
            prediction, message = Prediction.upsert(user.id, fixture, home, away)
            assert prediction is None
            assert message == "Scores must be non-negative whole numbers"

        assert Prediction.query.count() == 0

    def test_rejects_started_fixture(self, make_fixture, make_user):
        fixture = make_fixture(hours_from_now=-1)

        prediction, message = Prediction.upsert(make_user().id, fixture, 1, 0)

        assert prediction is None
        assert message == "Fixture has already started"
