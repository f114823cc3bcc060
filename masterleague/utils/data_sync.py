import logging
import threading
import time
from datetime import date
from functools import wraps

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from masterleague import db
from masterleague.models import Fixture, Season, Team
from masterleague.utils.timezone_utils import parse_api_datetime

logger = logging.getLogger(__name__)


class FootballDataError(Exception):
    """Raised when football-data.org cannot be reached or returns an error"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff.

    Retries on 429, 5xx and connection problems. Other HTTP errors are not
    retried. Gives up with FootballDataError.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            last_error = None
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else None
                    last_error = e
                    if status_code == 429:
                        retry_after = e.response.headers.get("Retry-After")
                        delay = (
                            float(retry_after)
                            if retry_after and retry_after.isdigit()
                            else base_delay * (backoff_factor**attempt)
                        )
                        logger.warning(
                            f"Rate limited. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                    elif status_code is not None and status_code >= 500:
                        delay = base_delay * (backoff_factor**attempt)
                        logger.warning(
                            f"Server error {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                    else:
                        raise FootballDataError(
                            f"HTTP error {status_code}: {e}", status_code=status_code
                        ) from e

                except requests.exceptions.RequestException as e:
                    last_error = e
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )

                if attempt < max_retries - 1:
                    time.sleep(delay)

            raise FootballDataError(
                f"Max retries ({max_retries}) exceeded: {last_error}"
            ) from last_error

        return wrapper

    return decorator


class FootballDataClient:
    """
    Thin client for the football-data.org v4 API with client-side rate limiting.

    The free tier allows 10 calls per minute, so the per-minute cap is enforced
    here and shared between the worker threads of a sync pass.
    """

    def __init__(
        self,
        api_key=None,
        api_base_url=None,
        max_requests_per_minute=10,
        timeout=30,
    ):
        self.api_base_url = (api_base_url or "https://api.football-data.org/v4").rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "MasterLeague/1.0"})
        if api_key:
            self.session.headers.update({"X-Auth-Token": api_key})

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps = []
        self._lock = threading.Lock()

    @classmethod
    def from_app_config(cls, app=None):
        app = app or current_app
        return cls(
            api_key=app.config.get("FOOTBALL_DATA_API_KEY"),
            api_base_url=app.config.get("FOOTBALL_DATA_API_BASE_URL"),
            max_requests_per_minute=app.config.get("FOOTBALL_DATA_CALLS_PER_MINUTE", 10),
            timeout=app.config.get("FOOTBALL_DATA_TIMEOUT", 30),
        )

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        with self._lock:
            current_time = time.time()

            # Remove timestamps older than 1 minute
            self.request_timestamps = [
                ts for ts in self.request_timestamps if current_time - ts < 60
            ]

            if len(self.request_timestamps) >= self.max_requests_per_minute:
                sleep_time = 60 - (current_time - self.request_timestamps[0])
                if sleep_time > 0:
                    logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                    time.sleep(sleep_time)
                    self.request_timestamps = []

            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_request_interval:
                time.sleep(self.min_request_interval - time_since_last)

            self.last_request_time = time.time()
            self.request_timestamps.append(self.last_request_time)
            self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, path, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()

        url = f"{self.api_base_url}/{path.lstrip('/')}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.warning(f"Request timeout for {url}")
            raise
        except requests.exceptions.ConnectionError:
            logger.warning(f"Connection error for {url}")
            raise
        except requests.exceptions.HTTPError as e:
            logger.warning(f"HTTP error {e.response.status_code}: {url}")
            raise
        except ValueError as e:
            raise FootballDataError(f"Invalid JSON from {url}: {e}") from e

    def get_rate_limit_status(self):
        """Get current rate limit status"""
        current_time = time.time()
        with self._lock:
            self.request_timestamps = [
                ts for ts in self.request_timestamps if current_time - ts < 60
            ]
            recent = len(self.request_timestamps)

        return {
            "total_requests": self.request_count,
            "requests_last_minute": recent,
            "max_requests_per_minute": self.max_requests_per_minute,
            "time_since_last_request": (
                current_time - self.last_request_time if self.last_request_time else 0
            ),
        }

    def get_competition_teams(self, competition, season=None):
        params = {"season": season} if season else None
        data = self._make_api_request(f"competitions/{competition}/teams", params=params)
        return data.get("teams", [])

    def get_competition_matches(self, competition, season=None):
        params = {"season": season} if season else None
        data = self._make_api_request(
            f"competitions/{competition}/matches", params=params
        )
        return [parse_match(match) for match in data.get("matches", [])]

    def get_matches(self, external_ids):
        """Fetch a batch of matches by id"""
        if not external_ids:
            return []
        ids = ",".join(str(i) for i in external_ids)
        data = self._make_api_request("matches", params={"ids": ids})
        return [parse_match(match) for match in data.get("matches", [])]


def _extract_score(score):
    """Full-time score if present, else half-time, else unknown"""
    for period in ("fullTime", "halfTime"):
        values = (score or {}).get(period) or {}
        home, away = values.get("home"), values.get("away")
        if home is not None and away is not None:
            return home, away
    return None, None


def parse_match(data):
    """Flatten a football-data.org match payload"""
    home_score, away_score = _extract_score(data.get("score"))
    return {
        "external_id": data.get("id"),
        "status": data.get("status"),
        "week": data.get("matchday"),
        "match_date": parse_api_datetime(data.get("utcDate")),
        "home_team_external_id": (data.get("homeTeam") or {}).get("id"),
        "away_team_external_id": (data.get("awayTeam") or {}).get("id"),
        "home_score": home_score,
        "away_score": away_score,
    }


class DataSync:
    """
    Seeds seasons, teams and fixtures from football-data.org
    """

    def __init__(self, client=None, competition=None):
        self.client = client or FootballDataClient.from_app_config()
        self.competition = competition or current_app.config.get(
            "FOOTBALL_DATA_COMPETITION", "PL"
        )

    def sync_season_data(self, year):
        """Sync all data for a given season"""
        try:
            logger.info(f"Starting sync for {year} season")

            season = self._create_or_update_season(year)
            teams = self._sync_teams(season)
            fixtures = self._sync_fixtures(season, teams)

            db.session.commit()
            logger.info(
                f"Successfully synced {year} season: {len(teams)} teams, {len(fixtures)} fixtures"
            )

            return True, f"Synced {len(teams)} teams and {len(fixtures)} fixtures"

        except (FootballDataError, ValueError, SQLAlchemyError) as e:
            db.session.rollback()
            logger.error(f"Error syncing season data: {str(e)}")
            return False, str(e)

    def _create_or_update_season(self, year):
        """Create or update season record"""
        season = Season.query.filter_by(year=year).first()

        if not season:
            # Premier League runs mid-August to late May
            start_date = date(year, 8, 1)
            end_date = date(year + 1, 5, 31)

            season = Season.create_season(
                year,
                start_date,
                end_date,
                total_weeks=current_app.config.get("TOTAL_WEEKS", 38),
            )
            db.session.flush()
            logger.info(f"Created new season for {year}")

        return season

    def _sync_teams(self, season):
        """Create or update teams, keyed by external id"""
        teams = {}

        for team_data in self.client.get_competition_teams(
            self.competition, season.year
        ):
            external_id = team_data.get("id")
            if external_id is None:
                continue

            team = Team.get_by_external_id(external_id)
            if not team:
                team = Team(external_id=external_id)
                db.session.add(team)

            team.name = team_data.get("name") or team.name or ""
            team.short_name = team_data.get("shortName")
            team.tla = team_data.get("tla")
            team.logo_url = team_data.get("crest")

            teams[external_id] = team

        db.session.flush()
        return teams

    def _sync_fixtures(self, season, teams):
        """Create or update fixtures; existing multipliers are left alone"""
        fixtures = []

        for match in self.client.get_competition_matches(self.competition, season.year):
            home_team = teams.get(match["home_team_external_id"])
            away_team = teams.get(match["away_team_external_id"])
            if not home_team or not away_team or not match["match_date"]:
                logger.warning(
                    f"Skipping match {match['external_id']}: unknown teams or kickoff"
                )
                continue

            fixture = Fixture.get_by_external_id(match["external_id"])
            if not fixture:
                fixture = Fixture(external_id=match["external_id"], points_multiplier=1)
                db.session.add(fixture)

            fixture.season_id = season.id
            fixture.week = match["week"] or fixture.week or 1
            fixture.home_team_id = home_team.id
            fixture.away_team_id = away_team.id
            fixture.match_date = match["match_date"]
            fixture.status = match["status"] or fixture.status or "SCHEDULED"
            fixture.home_score = match["home_score"]
            fixture.away_score = match["away_score"]

            fixtures.append(fixture)

        return fixtures
