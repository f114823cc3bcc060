"""
Integration tests for cron trigger endpoints
"""

from unittest.mock import patch

from masterleague import db
from masterleague.models import LeaderboardEntry
from masterleague.services.leaderboard_service import recalculate_leaderboard
from masterleague.services.prediction_processor import process_predictions_for_fixture

AUTH = {"Authorization": "Bearer test-cron-secret"}


class TestCronAuth:
    """Bearer token protection."""

    def test_missing_token(self, client):
        assert client.post("/api/cron/fixture-sync").status_code == 401

    def test_wrong_token(self, client):
        response = client.post(
            "/api/cron/fixture-sync", headers={"Authorization": "Bearer guess"}
        )
        assert response.status_code == 401

    def test_wrong_scheme(self, client):
        response = client.post(
            "/api/cron/safety-check", headers={"Authorization": "Basic test-cron-secret"}
        )
        assert response.status_code == 401

    def test_unconfigured_secret(self, app, client):
        app.config["CRON_SECRET"] = None

        response = client.post("/api/cron/recover-missed", headers=AUTH)

        assert response.status_code == 503


class TestCronJobs:
    """Authorised triggers."""

    def test_fixture_sync_when_idle(self, client, season, make_fixture):
        make_fixture(hours_from_now=120)

        response = client.post("/api/cron/fixture-sync", headers=AUTH)

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["skipped"] is True
        assert body["reason"] == "no_active_fixtures"

    def test_fixture_sync_force_flag(self, client):
        with patch(
            "masterleague.routes.cron.routes.check_and_update_recent_fixtures",
            return_value={"skipped": False, "errors": []},
        ) as mock_sync:
            client.post("/api/cron/fixture-sync?force=true", headers=AUTH)

        mock_sync.assert_called_once_with(force=True)

    def test_safety_check(self, client, season):
        response = client.post("/api/cron/safety-check?days=3", headers=AUTH)

        assert response.status_code == 200
        assert response.get_json()["fixtures_checked"] == 0

    def test_safety_check_days_out_of_range(self, client):
        response = client.post("/api/cron/safety-check?days=0", headers=AUTH)
        assert response.status_code == 400

    def test_recover_missed(self, client, season):
        response = client.post("/api/cron/recover-missed", headers=AUTH)

        assert response.status_code == 200
        assert response.get_json()["candidates"] == {
            "missing_scores": 0,
            "suspicious": 0,
            "stuck_live": 0,
        }

    def test_leaderboard_integrity_check_fixes_drift(
        self, client, season, make_user, make_fixture, make_prediction
    ):
        player = make_user("player")
        fixture = make_fixture(status="FINISHED", home_score=2, away_score=0, hours_from_now=-5)
        make_prediction(player, fixture, 2, 0)
        process_predictions_for_fixture(fixture.id)
        recalculate_leaderboard(season_id=season.id)
        entry = LeaderboardEntry.for_scope(None, season.id).one()
        entry.total_points = 1
        db.session.commit()

        response = client.post("/api/cron/leaderboard-integrity-check", headers=AUTH)

        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["auto_fixed"] is True
        assert [issue["type"] for issue in body["issues"]] == ["mismatch"]
        assert LeaderboardEntry.for_scope(None, season.id).one().total_points == 3

    def test_leaderboard_integrity_report_only(self, client):
        with patch(
            "masterleague.routes.cron.routes.check_leaderboard_integrity",
            return_value={"success": True, "issues": []},
        ) as mock_check:
            client.get("/api/cron/leaderboard-integrity-check", headers=AUTH)
            client.post("/api/cron/leaderboard-integrity-check?auto_fix=false", headers=AUTH)

        assert [c.kwargs["auto_fix"] for c in mock_check.call_args_list] == [False, False]

    def test_leaderboard_integrity_without_season(self, client):
        response = client.post("/api/cron/leaderboard-integrity-check", headers=AUTH)

        assert response.status_code == 404
        assert response.get_json()["error"] == "No active season"

    def test_leaderboard_integrity_requires_token(self, client):
        assert client.post("/api/cron/leaderboard-integrity-check").status_code == 401
