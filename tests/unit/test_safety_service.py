"""
Unit tests for the safety reconciler
"""

from masterleague import db
from masterleague.models import SyncState
from masterleague.services.prediction_processor import process_predictions_for_fixture
from masterleague.services.safety_service import (
    JOB_SAFETY_CHECK,
    fix_specific_fixture,
    fix_unprocessed_predictions,
)


class TestFixUnprocessedPredictions:
    """Repairing missed scoring."""

    def test_fixes_missed_fixture_once(self, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", home_score=3, away_score=1, hours_from_now=-48)
        exact = make_prediction(make_user(), fixture, 3, 1)
        outcome = make_prediction(make_user(), fixture, 1, 0)

        first = fix_unprocessed_predictions(days_back=7, season_id=season.id)

        assert first["success"] is True
        assert first["fixtures_checked"] == 1
        assert first["predictions_fixed"] == 2
        assert first["points_awarded"] == 4
        assert (exact.points, outcome.points) == (3, 1)

        second = fix_unprocessed_predictions(days_back=7, season_id=season.id)

        assert second["fixtures_checked"] == 0
        assert second["predictions_fixed"] == 0

    def test_respects_window(self, season, make_fixture, make_user, make_prediction):
        old = make_fixture(status="FINISHED", home_score=0, away_score=0, hours_from_now=-24 * 20)
        prediction = make_prediction(make_user(), old, 0, 0)

        result = fix_unprocessed_predictions(days_back=7)

        assert result["fixtures_checked"] == 0
        assert prediction.is_processed is False

        result = fix_unprocessed_predictions(days_back=30)
        assert result["predictions_fixed"] == 1

    def test_ignores_fixtures_without_result(self, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", hours_from_now=-10)
        make_prediction(make_user(), fixture, 1, 0)

        result = fix_unprocessed_predictions(days_back=7)

        assert result["fixtures_checked"] == 0

    def test_records_job_state(self, season):
        fix_unprocessed_predictions(days_back=3)
        fix_unprocessed_predictions(days_back=3)

        state = SyncState.get(JOB_SAFETY_CHECK)
        assert state.run_count == 2
        assert state.consecutive_failures == 0
        assert state.last_result["predictions_fixed"] == 0


class TestFixSpecificFixture:
    """Forced re-scoring of one fixture."""

    def test_rescores_tampered_points(self, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", home_score=1, away_score=2, hours_from_now=-5)
        prediction = make_prediction(make_user(), fixture, 1, 2)
        process_predictions_for_fixture(fixture.id)

        prediction.points = 99
        db.session.commit()

        result = fix_specific_fixture(fixture.id)

        assert result["success"] is True
        assert result["predictions_checked"] == 1
        assert result["predictions_fixed"] == 1
        assert result["previous_points"] == {prediction.id: 99}
        assert prediction.points == 3

    def test_unknown_fixture(self, app):
        result = fix_specific_fixture(31337)
        assert result["success"] is False
        assert "not found" in result["error"]

    def test_unfinished_fixture(self, make_fixture):
        fixture = make_fixture(status="IN_PLAY", home_score=0, away_score=0, hours_from_now=-1)

        result = fix_specific_fixture(fixture.id)

        assert result["success"] is False
        assert "not finished" in result["error"]
