"""
Unit tests for the football-data.org client and season seeding
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from masterleague import db
from masterleague.models import Fixture, Season, Team
from masterleague.utils.data_sync import (
    DataSync,
    FootballDataClient,
    FootballDataError,
    parse_match,
)


def _response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload or {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def fd_client():
    return FootballDataClient(api_key="secret-token", max_requests_per_minute=1000)


class TestParseMatch:
    """Flattening match payloads."""

    def test_full_time_score(self, sample_match_payload):
        match = parse_match(sample_match_payload)

        assert match["external_id"] == 537785
        assert match["status"] == "FINISHED"
        assert match["week"] == 1
        assert match["home_team_external_id"] == 57
        assert match["away_team_external_id"] == 61
        assert (match["home_score"], match["away_score"]) == (2, 1)
        assert match["match_date"] == datetime(2025, 8, 16, 14, 0, tzinfo=timezone.utc)

    def test_falls_back_to_half_time(self, sample_match_payload):
        sample_match_payload["status"] = "PAUSED"
        sample_match_payload["score"]["fullTime"] = {"home": None, "away": None}

        match = parse_match(sample_match_payload)

        assert (match["home_score"], match["away_score"]) == (1, 0)

    def test_no_score_yet(self, sample_match_payload):
        sample_match_payload["status"] = "TIMED"
        sample_match_payload["score"] = {
            "fullTime": {"home": None, "away": None},
            "halfTime": {"home": None, "away": None},
        }

        match = parse_match(sample_match_payload)

        assert match["home_score"] is None
        assert match["away_score"] is None


class TestFootballDataClient:
    """HTTP behaviour of the API client."""

    def test_sends_auth_token(self, fd_client):
        assert fd_client.session.headers["X-Auth-Token"] == "secret-token"

    def test_get_matches(self, fd_client, sample_match_payload):
        with patch.object(
            fd_client.session, "get", return_value=_response(payload={"matches": [sample_match_payload]})
        ) as mock_get:
            matches = fd_client.get_matches([537785, 537786])

        assert [m["external_id"] for m in matches] == [537785]
        args, kwargs = mock_get.call_args
        assert args[0] == "https://api.football-data.org/v4/matches"
        assert kwargs["params"] == {"ids": "537785,537786"}

    def test_get_matches_without_ids(self, fd_client):
        with patch.object(fd_client.session, "get") as mock_get:
            assert fd_client.get_matches([]) == []
        mock_get.assert_not_called()

    def test_client_error_is_not_retried(self, fd_client):
        with patch.object(fd_client.session, "get", return_value=_response(404)) as mock_get:
            with pytest.raises(FootballDataError) as exc_info:
                fd_client.get_competition_teams("PL", 2025)

        assert exc_info.value.status_code == 404
        assert mock_get.call_count == 1

    @patch("masterleague.utils.data_sync.time.sleep")
    def test_server_error_is_retried(self, mock_sleep, fd_client):
        responses = [_response(503), _response(502), _response(payload={"teams": [{"id": 57}]})]
        with patch.object(fd_client.session, "get", side_effect=responses) as mock_get:
            teams = fd_client.get_competition_teams("PL", 2025)

        assert teams == [{"id": 57}]
        assert mock_get.call_count == 3
        assert mock_sleep.call_count >= 2

    @patch("masterleague.utils.data_sync.time.sleep")
    def test_rate_limit_honours_retry_after(self, mock_sleep, fd_client):
        responses = [
            _response(429, headers={"Retry-After": "7"}),
            _response(payload={"matches": []}),
        ]
        with patch.object(fd_client.session, "get", side_effect=responses):
            assert fd_client.get_matches([1]) == []

        assert 7.0 in [c.args[0] for c in mock_sleep.call_args_list]

    @patch("masterleague.utils.data_sync.time.sleep")
    def test_gives_up_after_retries(self, mock_sleep, fd_client):
        with patch.object(
            fd_client.session,
            "get",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ) as mock_get:
            with pytest.raises(FootballDataError):
                fd_client.get_matches([1])

        assert mock_get.call_count == 3

    def test_invalid_json(self, fd_client):
        response = _response()
        response.json.side_effect = ValueError("Expecting value")
        with patch.object(fd_client.session, "get", return_value=response):
            with pytest.raises(FootballDataError):
                fd_client.get_matches([1])

    def test_rate_limit_status(self, fd_client):
        status = fd_client.get_rate_limit_status()
        assert status["total_requests"] == 0
        assert status["max_requests_per_minute"] == 1000


@pytest.fixture
def api_client(sample_match_payload):
    second = dict(sample_match_payload)
    second.update(
        {
            "id": 537786,
            "utcDate": "2025-08-23T16:30:00Z",
            "status": "TIMED",
            "matchday": 2,
            "homeTeam": {"id": 61},
            "awayTeam": {"id": 57},
            "score": {"fullTime": {"home": None, "away": None}},
        }
    )

    mock = MagicMock()
    mock.get_competition_teams.return_value = [
        {"id": 57, "name": "Arsenal FC", "shortName": "Arsenal", "tla": "ARS", "crest": "https://crests.football-data.org/57.png"},
        {"id": 61, "name": "Chelsea FC", "shortName": "Chelsea", "tla": "CHE", "crest": "https://crests.football-data.org/61.png"},
    ]
    mock.get_competition_matches.return_value = [
        parse_match(sample_match_payload),
        parse_match(second),
    ]
    return mock


class TestDataSync:
    """Seeding seasons, teams and fixtures."""

    def test_sync_season_data(self, app, api_client):
        success, message = DataSync(client=api_client, competition="PL").sync_season_data(2025)

        assert success is True
        assert "2 teams" in message

        season = Season.query.filter_by(year=2025).one()
        assert season.name == "2025-26 Premier League"
        assert Team.query.count() == 2

        finished = Fixture.get_by_external_id(537785)
        assert finished.status == "FINISHED"
        assert (finished.home_score, finished.away_score) == (2, 1)
        assert finished.home_team.tla == "ARS"

        upcoming = Fixture.get_by_external_id(537786)
        assert upcoming.week == 2
        assert upcoming.home_score is None

        api_client.get_competition_matches.assert_called_once_with("PL", 2025)

    def test_resync_keeps_multipliers(self, app, api_client):
        sync = DataSync(client=api_client, competition="PL")
        sync.sync_season_data(2025)

        fixture = Fixture.get_by_external_id(537786)
        fixture.points_multiplier = 3
        db.session.commit()

        success, _ = sync.sync_season_data(2025)

        assert success is True
        assert Fixture.query.count() == 2
        assert Fixture.get_by_external_id(537786).points_multiplier == 3

    def test_api_failure(self, app):
        failing = MagicMock()
        failing.get_competition_teams.side_effect = FootballDataError("HTTP error 403", 403)

        success, message = DataSync(client=failing, competition="PL").sync_season_data(2025)

        assert success is False
        assert "403" in message
        assert Season.query.count() == 0
