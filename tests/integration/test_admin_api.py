"""
Integration tests for admin endpoints
"""

from unittest.mock import patch

import pytest

from masterleague.models import LeaderboardEntry


@pytest.fixture
def admin(make_user, login):
    user = make_user("referee", is_admin=True)
    login(user)
    return user


class TestAdminAccess:
    """Admin-only routes."""

    def test_anonymous(self, client):
        assert client.get("/admin/sync/status").status_code == 401

    def test_non_admin(self, client, make_user, login):
        login(make_user())
        response = client.get("/admin/sync/status")
        assert response.status_code == 403


class TestFixtureAdmin:
    """Result overrides and multipliers."""

    def test_set_result_scores_predictions(
        self, client, admin, season, make_fixture, make_user, make_prediction
    ):
        fixture = make_fixture(status="IN_PLAY", home_score=0, away_score=0, hours_from_now=-3)
        player = make_user("player")
        prediction = make_prediction(player, fixture, 2, 2)

        response = client.post(
            f"/admin/fixtures/{fixture.id}/result", json={"home_score": 2, "away_score": 2}
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["fixture"]["state"] == "FINISHED"
        assert body["processing"]["processed"] == 1
        assert prediction.points == 3

        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=player.id).one()
        assert entry.total_points == 3

    def test_reverted_result_leaves_standings(
        self, client, admin, season, make_fixture, make_user, make_prediction
    ):
        fixture = make_fixture(status="IN_PLAY", home_score=0, away_score=0, hours_from_now=-3)
        player = make_user("player")
        make_prediction(player, fixture, 1, 0)
        url = f"/admin/fixtures/{fixture.id}/result"

        client.post(url, json={"home_score": 1, "away_score": 0})
        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=player.id).one()
        assert entry.total_points == 3

        response = client.post(
            url, json={"home_score": 1, "away_score": 0, "status": "POSTPONED"}
        )

        assert response.status_code == 200
        assert response.get_json()["leaderboards"]["scopes"] == 1
        entry = LeaderboardEntry.for_scope(None, season.id).filter_by(user_id=player.id).one()
        assert entry.total_points == 0

    def test_set_result_validation(self, client, admin, make_fixture):
        fixture = make_fixture()

        response = client.post(
            f"/admin/fixtures/{fixture.id}/result", json={"home_score": -1, "away_score": 0}
        )

        assert response.status_code == 400

    def test_unknown_fixture(self, client, admin):
        response = client.post("/admin/fixtures/4242/result", json={"home_score": 1, "away_score": 0})
        assert response.status_code == 404

    def test_set_multiplier(self, client, admin, make_fixture):
        fixture = make_fixture()

        response = client.put(f"/admin/fixtures/{fixture.id}/multiplier", json={"multiplier": 3})

        assert response.status_code == 200
        assert fixture.points_multiplier == 3

        response = client.put(f"/admin/fixtures/{fixture.id}/multiplier", json={"multiplier": 5})
        assert response.status_code == 400

    def test_random_week_multipliers(self, client, admin, make_fixture):
        for _ in range(4):
            make_fixture(week=7)

        response = client.post("/admin/fixtures/week/7/multipliers")

        assert response.status_code == 200
        assert sorted(response.get_json()["multipliers"].values()) == [1, 1, 2, 3]

    def test_reprocess(self, client, admin, season, make_fixture, make_user, make_prediction):
        fixture = make_fixture(status="FINISHED", home_score=1, away_score=0, hours_from_now=-10)
        prediction = make_prediction(make_user(), fixture, 2, 0)

        response = client.post(f"/admin/fixtures/{fixture.id}/reprocess")

        assert response.status_code == 200
        assert response.get_json()["predictions_fixed"] == 1
        assert prediction.points == 1

    def test_reprocess_unfinished(self, client, admin, make_fixture):
        fixture = make_fixture()
        assert client.post(f"/admin/fixtures/{fixture.id}/reprocess").status_code == 400


class TestMaintenanceAdmin:
    """Recalculation, safety check and sync."""

    def test_recalculate_all(self, client, admin, season, make_group):
        make_group(admin)

        response = client.post("/admin/leaderboard/recalculate")

        assert response.status_code == 200
        assert response.get_json()["scopes"] == 2

    def test_recalculate_unknown_group(self, client, admin, season):
        response = client.post("/admin/leaderboard/recalculate?group_id=77")
        assert response.status_code == 404

    def test_update_predictions(self, client, admin, season):
        response = client.post("/admin/predictions/update")
        assert response.status_code == 200
        assert response.get_json()["predictions_processed"] == 0

    def test_safety_check(self, client, admin, season):
        response = client.post("/admin/safety-check", json={"days_back": 14})

        assert response.status_code == 200
        assert response.get_json()["predictions_fixed"] == 0

        assert client.post("/admin/safety-check", json={"days_back": 365}).status_code == 400

    def test_force_sync(self, client, admin):
        with patch(
            "masterleague.routes.admin.routes.check_and_update_recent_fixtures",
            return_value={"skipped": False, "updated": 0, "errors": []},
        ) as mock_sync:
            response = client.post("/admin/sync")

        assert response.status_code == 200
        mock_sync.assert_called_once_with(force=True)

    def test_sync_status(self, app, client, admin, season):
        body = client.get("/admin/sync/status").get_json()

        assert body["live_fixtures"] == 0
        assert body["cooldowns"]["full"] == app.config["FIXTURE_SYNC_COOLDOWN"]
        assert body["cache"]["type"] == app.config["CACHE_TYPE"]
