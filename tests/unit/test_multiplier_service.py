"""
Unit tests for fixture points multipliers
"""

import random

from masterleague.models import LeaderboardEntry
from masterleague.services.multiplier_service import (
    set_fixture_multiplier,
    set_random_multipliers_for_week,
)
from masterleague.services.prediction_processor import process_predictions_for_fixture


class TestSetFixtureMultiplier:
    """Manual multiplier changes."""

    def test_valid(self, make_fixture):
        fixture = make_fixture()

        updated, message = set_fixture_multiplier(fixture.id, 2)

        assert updated.id == fixture.id
        assert fixture.points_multiplier == 2
        assert message == "Multiplier updated"

    def test_out_of_range(self, make_fixture):
        fixture = make_fixture()

        for value in (0, 4, -1):
            updated, message = set_fixture_multiplier(fixture.id, value)
            assert updated is None
            assert "between 1 and 3" in message

        assert fixture.points_multiplier == 1

    def test_non_integer(self, make_fixture):
        fixture = make_fixture()

        assert set_fixture_multiplier(fixture.id, True)[0] is None
        assert set_fixture_multiplier(fixture.id, 2.0)[0] is None

    def test_unknown_fixture(self, app):
        assert set_fixture_multiplier(999, 2) == (None, "Fixture not found")


class TestRandomWeekMultipliers:
    """One 3x and one 2x fixture per week."""

    def test_assigns_one_triple_and_one_double(self, season, make_fixture):
        fixtures = [make_fixture(week=4) for _ in range(5)]
        make_fixture(week=5, multiplier=2)

        success, _, assignments = set_random_multipliers_for_week(
            season.id, 4, rng=random.Random(7)
        )

        assert success is True
        assert set(assignments) == {f.id for f in fixtures}
        assert sorted(assignments.values()) == [1, 1, 1, 2, 3]
        assert sorted(f.points_multiplier for f in fixtures) == [1, 1, 1, 2, 3]

    def test_resets_previous_assignments(self, season, make_fixture):
        fixtures = [make_fixture(week=6, multiplier=3) for _ in range(4)]

        set_random_multipliers_for_week(season.id, 6, rng=random.Random(1))

        assert sorted(f.points_multiplier for f in fixtures) == [1, 1, 2, 3]

    def test_needs_two_fixtures(self, season, make_fixture):
        make_fixture(week=9)

        success, message, assignments = set_random_multipliers_for_week(season.id, 9)

        assert success is False
        assert assignments == {}
        assert "at least two" in message


class TestMultiplierOnScoredFixtures:
    """Finished fixtures are re-scored when their multiplier changes."""

    def test_manual_change_rescores(self, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", home_score=2, away_score=1, hours_from_now=-30)
        user = make_user()
        prediction = make_prediction(user, fixture, 2, 1)
        process_predictions_for_fixture(fixture.id)
        assert prediction.points == 3

        _, message = set_fixture_multiplier(fixture.id, 3)

        assert message == "Multiplier updated and predictions re-scored"
        assert prediction.points == 9
        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=user.id).one()
        assert entry.total_points == 9

    def test_same_multiplier_is_a_no_op(self, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", home_score=0, away_score=0, hours_from_now=-30)
        make_prediction(make_user(), fixture, 0, 0)
        process_predictions_for_fixture(fixture.id)

        _, message = set_fixture_multiplier(fixture.id, 1)

        assert message == "Multiplier updated"

    def test_unfinished_fixture_is_not_scored(self, make_fixture, make_user, make_prediction):
        fixture = make_fixture()
        prediction = make_prediction(make_user(), fixture, 1, 0)

        set_fixture_multiplier(fixture.id, 2)

        assert prediction.points is None
        assert prediction.is_processed is False

    def test_random_week_rescores(self, season, make_fixture, make_user, make_prediction):
        user = make_user()
        fixtures = [
            make_fixture(week=8, status="FINISHED", home_score=1, away_score=1, hours_from_now=-30)
            for _ in range(2)
        ]
        predictions = [make_prediction(user, fixture, 1, 1) for fixture in fixtures]
        for fixture in fixtures:
            process_predictions_for_fixture(fixture.id)

        set_random_multipliers_for_week(season.id, 8, rng=random.Random(3))

        assert sorted(p.points for p in predictions) == [6, 9]
        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=user.id).one()
        assert entry.total_points == 15
