"""
Pytest fixtures and configuration for all tests.
"""

import itertools
from datetime import date, datetime, timedelta, timezone

import pytest
from flask import g

from masterleague import create_app, db
from masterleague.models import Fixture, Group, Prediction, Season, Team, User

TEST_PASSWORD = "Password123"


@pytest.fixture
def app():
    """
    Application with a fresh in-memory database.

    An app context stays pushed for the whole test so factories and
    requests share one session.
    """
    app = create_app("testing")

    # Requests reuse the pushed app context, so drop the cached user
    # and let Flask-Login reload it from the session cookie
    @app.before_request
    def _reset_login_user():
        g.pop("_login_user", None)

    ctx = app.app_context()
    ctx.push()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def season(app):
    """Active 2025-26 season"""
    season = Season.create_season(2025, date(2025, 8, 1), date(2026, 5, 31))
    db.session.commit()
    season.activate()
    return season


@pytest.fixture
def teams(app):
    """Six teams keyed by TLA"""
    rows = [
        (57, "Arsenal FC", "Arsenal", "ARS"),
        (61, "Chelsea FC", "Chelsea", "CHE"),
        (64, "Liverpool FC", "Liverpool", "LIV"),
        (65, "Manchester City FC", "Man City", "MCI"),
        (66, "Manchester United FC", "Man United", "MUN"),
        (73, "Tottenham Hotspur FC", "Tottenham", "TOT"),
    ]
    created = {}
    for external_id, name, short_name, tla in rows:
        team = Team(external_id=external_id, name=name, short_name=short_name, tla=tla)
        db.session.add(team)
        created[tla] = team
    db.session.commit()
    return created


@pytest.fixture
def make_fixture(season, teams):
    """
    Factory for fixtures of the active season.

    Kickoff defaults to two days from now; pass `kickoff` as an aware
    datetime or `hours_from_now`.
    """
    external_ids = itertools.count(500000)
    pairings = itertools.cycle(
        [("ARS", "CHE"), ("LIV", "MCI"), ("MUN", "TOT"), ("CHE", "LIV"), ("MCI", "ARS")]
    )

    def _make(
        week=1,
        status="SCHEDULED",
        home_score=None,
        away_score=None,
        kickoff=None,
        hours_from_now=48,
        multiplier=1,
        home="",
        away="",
        season_obj=None,
    ):
        if not home or not away:
            home, away = next(pairings)
        if kickoff is None:
            kickoff = datetime.now(timezone.utc) + timedelta(hours=hours_from_now)

        fixture = Fixture(
            external_id=next(external_ids),
            season_id=(season_obj or season).id,
            week=week,
            home_team_id=teams[home].id,
            away_team_id=teams[away].id,
            match_date=kickoff,
            status=status,
            home_score=home_score,
            away_score=away_score,
            points_multiplier=multiplier,
        )
        db.session.add(fixture)
        db.session.commit()
        return fixture

    return _make


@pytest.fixture
def make_user(app):
    """Factory for users with the shared test password"""
    counter = itertools.count(1)

    def _make(username=None, is_admin=False, is_active=True, display_name=None):
        username = username or f"player{next(counter)}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_admin=is_admin,
            is_active=is_active,
            display_name=display_name,
        )
        user.set_password(TEST_PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_group(app):
    """Factory for groups; the creator joins as group admin"""

    def _make(creator, name="Five-a-side", members=(), max_members=50):
        group = Group(name=name, creator_id=creator.id, max_members=max_members)
        db.session.add(group)
        db.session.flush()
        group.add_member(creator, is_admin=True)
        for member in members:
            group.add_member(member)
        db.session.commit()
        return group

    return _make


@pytest.fixture
def make_prediction(app):
    """Factory that writes a prediction directly, ignoring kickoff"""

    def _make(user, fixture, home_score, away_score):
        prediction = Prediction(
            user_id=user.id,
            fixture_id=fixture.id,
            predicted_home_score=home_score,
            predicted_away_score=away_score,
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return _make


@pytest.fixture
def login(client):
    """Log the test client in as the given user"""

    def _login(user, password=TEST_PASSWORD):
        response = client.post(
            "/auth/login", json={"username": user.username, "password": password}
        )
        assert response.status_code == 200, response.get_json()
        return response

    return _login


@pytest.fixture
def sample_match_payload():
    """A finished match as returned by football-data.org"""
    return {
        "id": 537785,
        "utcDate": "2025-08-16T14:00:00Z",
        "status": "FINISHED",
        "matchday": 1,
        "homeTeam": {"id": 57, "name": "Arsenal FC"},
        "awayTeam": {"id": 61, "name": "Chelsea FC"},
        "score": {
            "winner": "HOME_TEAM",
            "fullTime": {"home": 2, "away": 1},
            "halfTime": {"home": 1, "away": 0},
        },
    }
