"""
Polls football-data.org for fixtures that may have changed and writes the
changes back, scoring predictions for fixtures that have just finished.

Calls are cheap when nothing is happening: a cooldown (persisted in the
sync_state table) gates full passes, a shorter one gates live-only passes,
and a database-only pre-check skips the API entirely when no fixture is
near kickoff, in play, or recently finished.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from masterleague import db
from masterleague.models import Fixture, Season, SyncState
from masterleague.services.prediction_processor import process_predictions_for_fixture
from masterleague.utils.data_sync import FootballDataClient
from masterleague.utils.fixture_status import (
    FINISHED,
    FINISHED_STATUSES,
    LIVE,
    LIVE_STATUSES,
    SCHEDULED_STATUSES,
    map_api_status,
)

logger = logging.getLogger(__name__)

JOB_FIXTURE_SYNC = "fixture_sync"
JOB_LIVE_SYNC = "live_fixture_sync"
JOB_RECOVER_MISSED = "recover_missed"

RECENT_WINDOW = timedelta(days=2)
RESYNC_AFTER = timedelta(hours=6)
UPCOMING_WINDOW = timedelta(hours=1)

RECENTLY_FINISHED_LIMIT = 20
MISSED_LIMIT = 20
UPCOMING_LIMIT = 15


def _utcnow():
    return datetime.now(timezone.utc)


def _sync_result(**overrides):
    result = {
        "skipped": False,
        "reason": None,
        "mode": None,
        "checked": 0,
        "updated": 0,
        "live": 0,
        "finished": 0,
        "predictions_processed": 0,
        "errors": [],
    }
    result.update(overrides)
    return result


def get_live_fixtures():
    return (
        Fixture.query.filter(Fixture.status.in_(LIVE_STATUSES))
        .order_by(Fixture.match_date, Fixture.id)
        .all()
    )


def get_recently_finished_fixtures(now):
    """Finished in the last two days and not synced in the last six hours"""
    return (
        Fixture.query.filter(
            Fixture.status.in_(FINISHED_STATUSES),
            Fixture.match_date >= now - RECENT_WINDOW,
            Fixture.match_date <= now,
            db.or_(
                Fixture.last_synced_at.is_(None),
                Fixture.last_synced_at < now - RESYNC_AFTER,
            ),
        )
        .order_by(Fixture.match_date.desc(), Fixture.id)
        .limit(RECENTLY_FINISHED_LIMIT)
        .all()
    )


def get_potentially_missed_fixtures(now):
    """Kickoff has passed in the last two days but the fixture is still scheduled"""
    return (
        Fixture.query.filter(
            Fixture.status.in_(SCHEDULED_STATUSES),
            Fixture.match_date >= now - RECENT_WINDOW,
            Fixture.match_date <= now,
        )
        .order_by(Fixture.match_date, Fixture.id)
        .limit(MISSED_LIMIT)
        .all()
    )


def get_upcoming_fixtures(now):
    """Kicking off within the next hour"""
    return (
        Fixture.query.filter(
            Fixture.status.in_(SCHEDULED_STATUSES),
            Fixture.match_date > now,
            Fixture.match_date <= now + UPCOMING_WINDOW,
        )
        .order_by(Fixture.match_date, Fixture.id)
        .limit(UPCOMING_LIMIT)
        .all()
    )


def fixture_updates_needed(now=None):
    """
    Database-only check for whether a sync pass could find anything.

    Returns:
        tuple: (needed, reason)
    """
    now = now or _utcnow()

    if Fixture.query.filter(Fixture.status.in_(LIVE_STATUSES)).first():
        return True, "live_fixtures"
    if get_upcoming_fixtures(now):
        return True, "upcoming_fixtures"
    if get_potentially_missed_fixtures(now):
        return True, "missed_fixtures"
    if get_recently_finished_fixtures(now):
        return True, "recently_finished"
    return False, "no_active_fixtures"


def select_fixtures_to_update(now=None):
    """Live, recently finished, potentially missed and upcoming fixtures, deduplicated"""
    now = now or _utcnow()

    selected = {}
    for group in (
        get_live_fixtures(),
        get_recently_finished_fixtures(now),
        get_potentially_missed_fixtures(now),
        get_upcoming_fixtures(now),
    ):
        for fixture in group:
            selected.setdefault(fixture.id, fixture)

    return [selected[fixture_id] for fixture_id in sorted(selected)]


def fetch_match_data(client, external_ids, batch_size=5, max_workers=3):
    """
    Fetch matches in batches with a bounded thread pool.

    Returns:
        tuple: ({external_id: match}, {external_id: error message}) where a
        failed batch marks every id in it as failed
    """
    batches = [
        external_ids[i : i + batch_size] for i in range(0, len(external_ids), batch_size)
    ]
    matches = {}
    failures = {}
    if not batches:
        return matches, failures

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(batches)))) as executor:
        futures = {executor.submit(client.get_matches, batch): batch for batch in batches}
        for future in as_completed(futures):
            batch = futures[future]
            try:
                for match in future.result():
                    matches[match["external_id"]] = match
            except Exception as e:
                logger.error(f"Failed to fetch match batch {batch}: {e}")
                for external_id in batch:
                    failures[external_id] = str(e)

    return matches, failures


def apply_match_update(fixture, match, now=None):
    """
    Copy status and score from an API match onto a fixture.

    Leaves the fixture untouched when nothing differs. A missing score in
    the payload never clears a known score.

    Returns:
        bool: True when the fixture was modified
    """
    new_status = match.get("status") or fixture.status
    new_home = match.get("home_score")
    new_away = match.get("away_score")
    if new_home is None or new_away is None:
        new_home, new_away = fixture.home_score, fixture.away_score

    if (
        new_status == fixture.status
        and new_home == fixture.home_score
        and new_away == fixture.away_score
    ):
        return False

    logger.info(
        f"Fixture {fixture.id} ({fixture.external_id}) changed: "
        f"{fixture.status} {fixture.home_score}-{fixture.away_score} -> "
        f"{new_status} {new_home}-{new_away}"
    )
    if map_api_status(new_status) != map_api_status(fixture.status):
        logger.info(
            f"Fixture {fixture.id} state {fixture.state} -> {map_api_status(new_status)}"
        )

    fixture.status = new_status
    fixture.home_score = new_home
    fixture.away_score = new_away
    fixture.last_synced_at = now or _utcnow()
    return True


def update_fixture_statuses(fixtures, client=None, recalculate=True, now=None):
    """
    Refresh a set of fixtures from the API.

    Fetches run concurrently; writes happen here, one fixture at a time, each
    committed on its own. A fixture whose new state is finished with a score
    has its predictions scored. Failures are collected in the result rather
    than raised.
    """
    result = _sync_result()
    fixtures = list({fixture.id: fixture for fixture in fixtures}.values())
    if not fixtures:
        return result

    config = current_app.config
    client = client or FootballDataClient.from_app_config()
    now = now or _utcnow()

    external_ids = sorted(fixture.external_id for fixture in fixtures)
    matches, failures = fetch_match_data(
        client,
        external_ids,
        batch_size=config.get("FOOTBALL_DATA_BATCH_SIZE", 5),
        max_workers=config.get("SYNC_MAX_WORKERS", 3),
    )

    scored_seasons = set()
    touched_seasons = set()

    for fixture in sorted(fixtures, key=lambda f: f.id):
        if fixture.external_id in failures:
            result["errors"].append(
                {"fixture_id": fixture.id, "error": failures[fixture.external_id]}
            )
            continue

        match = matches.get(fixture.external_id)
        if match is None:
            result["errors"].append(
                {"fixture_id": fixture.id, "error": "Match missing from API response"}
            )
            continue

        result["checked"] += 1
        previous_state = fixture.state
        was_scoreable = fixture.is_scoreable

        try:
            changed = apply_match_update(fixture, match, now)
            if changed:
                db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to save fixture {fixture.id}: {e}")
            result["errors"].append({"fixture_id": fixture.id, "error": str(e)})
            continue

        if fixture.state == LIVE:
            result["live"] += 1

        if not changed:
            continue

        result["updated"] += 1
        touched_seasons.add(fixture.season_id)
        if fixture.state == FINISHED and previous_state != FINISHED:
            result["finished"] += 1

        if was_scoreable and not fixture.is_scoreable:
            # A scored result was withdrawn, so standings must drop it
            logger.warning(f"Fixture {fixture.id} is no longer finished with a score")
            scored_seasons.add(fixture.season_id)

        if fixture.is_scoreable:
            try:
                processed = process_predictions_for_fixture(fixture.id)
                result["predictions_processed"] += processed["processed"]
                if processed["processed"]:
                    scored_seasons.add(fixture.season_id)
            except Exception as e:
                # Left unprocessed for the safety check to repair
                result["errors"].append(
                    {"fixture_id": fixture.id, "error": f"Scoring failed: {e}"}
                )

    for season_id in sorted(touched_seasons):
        season = db.session.get(Season, season_id)
        if season:
            season.update_current_week()

    if recalculate and scored_seasons:
        from masterleague.services.leaderboard_service import (
            recalculate_all_leaderboards,
        )

        for season_id in sorted(scored_seasons):
            summary = recalculate_all_leaderboards(season_id)
            for error in summary["errors"]:
                result["errors"].append({"leaderboard": error})

    logger.info(
        f"Fixture status update: checked={result['checked']} updated={result['updated']} "
        f"live={result['live']} finished={result['finished']} "
        f"predictions={result['predictions_processed']} errors={len(result['errors'])}"
    )
    return result


def _record_run(state, result):
    summary = {key: value for key, value in result.items() if key != "errors"}
    summary["error_count"] = len(result["errors"])
    state.record_result(
        success=not result["errors"],
        result=summary,
        error=result["errors"][0] if result["errors"] else None,
    )
    db.session.commit()


def check_and_update_recent_fixtures(force=False, client=None, now=None):
    """
    Cooldown-gated sync of the fixtures most likely to have changed.

    Args:
        force: Bypass the cooldowns and the pre-check
        client: FootballDataClient to use (built from config when omitted)
        now: Current time, for tests

    Returns:
        dict with skipped, reason, mode, checked, updated, live, finished,
        predictions_processed and errors
    """
    now = now or _utcnow()
    config = current_app.config

    full_state = SyncState.get(JOB_FIXTURE_SYNC)
    live_state = SyncState.get(JOB_LIVE_SYNC)
    db.session.commit()

    mode = "full"
    if not force:
        since_full = full_state.seconds_since_last_run(now)
        if since_full is not None and since_full < config.get("FIXTURE_SYNC_COOLDOWN", 300):
            if not Fixture.query.filter(Fixture.status.in_(LIVE_STATUSES)).first():
                logger.debug(f"Fixture sync skipped: cooldown ({since_full:.0f}s since last run)")
                return _sync_result(skipped=True, reason="cooldown")

            since_live = live_state.seconds_since_last_run(now)
            if since_live is not None and since_live < config.get("LIVE_SYNC_COOLDOWN", 30):
                logger.debug(f"Live sync skipped: cooldown ({since_live:.0f}s since last run)")
                return _sync_result(skipped=True, reason="live_cooldown")

            mode = "live"
        else:
            needed, reason = fixture_updates_needed(now)
            if not needed:
                logger.debug(f"Fixture sync skipped: {reason}")
                return _sync_result(skipped=True, reason=reason)

    candidates = get_live_fixtures() if mode == "live" else select_fixtures_to_update(now)

    # Claim the slot before calling the API so overlapping triggers back off
    if mode == "full":
        full_state.mark_run(now)
    live_state.mark_run(now)
    db.session.commit()

    logger.info(
        f"Starting {mode} fixture sync ({len(candidates)} fixtures, force={force})"
    )
    result = update_fixture_statuses(candidates, client=client, now=now)
    result["mode"] = mode

    _record_run(full_state if mode == "full" else live_state, result)
    return result


def get_missing_score_fixtures(now):
    """Finished in the last 14 days without a score"""
    return (
        Fixture.query.filter(
            Fixture.status.in_(FINISHED_STATUSES),
            Fixture.match_date >= now - timedelta(days=14),
            db.or_(Fixture.home_score.is_(None), Fixture.away_score.is_(None)),
        )
        .order_by(Fixture.match_date, Fixture.id)
        .all()
    )


def get_suspicious_fixtures(now):
    """Kicked off 3 to 7 days ago and still not finished"""
    return (
        Fixture.query.filter(
            ~Fixture.status.in_(FINISHED_STATUSES),
            Fixture.match_date >= now - timedelta(days=7),
            Fixture.match_date <= now - timedelta(days=3),
        )
        .order_by(Fixture.match_date, Fixture.id)
        .all()
    )


def get_stuck_live_fixtures(now):
    """Still live more than three hours after kickoff (up to 14 days back)"""
    return (
        Fixture.query.filter(
            Fixture.status.in_(LIVE_STATUSES),
            Fixture.match_date >= now - timedelta(days=14),
            Fixture.match_date <= now - timedelta(hours=3),
        )
        .order_by(Fixture.match_date, Fixture.id)
        .all()
    )


def recover_missed_fixtures(client=None, now=None):
    """
    Deep scan for fixtures the regular poller may have missed, refresh them
    and score any that are now finished.
    """
    now = now or _utcnow()

    groups = {
        "missing_scores": get_missing_score_fixtures(now),
        "suspicious": get_suspicious_fixtures(now),
        "stuck_live": get_stuck_live_fixtures(now),
    }
    candidates = {}
    for fixtures in groups.values():
        for fixture in fixtures:
            candidates.setdefault(fixture.id, fixture)

    logger.info(
        "Recovering missed fixtures: "
        + ", ".join(f"{name}={len(items)}" for name, items in groups.items())
    )

    result = _sync_result(mode="recover")
    result["candidates"] = {name: len(items) for name, items in groups.items()}

    state = SyncState.get(JOB_RECOVER_MISSED)
    state.mark_run(now)
    db.session.commit()

    if candidates:
        result.update(
            update_fixture_statuses(
                list(candidates.values()), client=client, recalculate=False, now=now
            ),
            mode="recover",
            candidates=result["candidates"],
        )

        # Unchanged fixtures may still carry unscored predictions
        from masterleague.services.prediction_processor import (
            get_fixtures_with_unprocessed_predictions,
        )

        candidate_ids = set(candidates)
        scored_seasons = set()
        for fixture in get_fixtures_with_unprocessed_predictions():
            if fixture.id not in candidate_ids:
                continue
            try:
                processed = process_predictions_for_fixture(fixture.id)
            except Exception as e:
                result["errors"].append(
                    {"fixture_id": fixture.id, "error": f"Scoring failed: {e}"}
                )
                continue
            result["predictions_processed"] += processed["processed"]
            if processed["processed"]:
                scored_seasons.add(fixture.season_id)

        if result["updated"] or scored_seasons:
            from masterleague.services.leaderboard_service import (
                recalculate_all_leaderboards,
            )

            seasons = scored_seasons | {f.season_id for f in candidates.values()}
            for season_id in sorted(seasons):
                summary = recalculate_all_leaderboards(season_id)
                for error in summary["errors"]:
                    result["errors"].append({"leaderboard": error})

    result["success"] = not result["errors"]
    _record_run(state, result)
    return result


def get_sync_status():
    """Job bookkeeping and fixture counts for the admin status endpoint"""
    now = _utcnow()
    jobs = SyncState.query.order_by(SyncState.job_name).all()
    next_fixture = (
        Fixture.query.filter(
            Fixture.status.in_(SCHEDULED_STATUSES), Fixture.match_date > now
        )
        .order_by(Fixture.match_date)
        .first()
    )
    return {
        "jobs": [job.to_dict() for job in jobs],
        "live_fixtures": Fixture.query.filter(Fixture.status.in_(LIVE_STATUSES)).count(),
        "next_kickoff": next_fixture.to_dict() if next_fixture else None,
        "updates_needed": fixture_updates_needed(now)[0],
        "cooldowns": {
            "full": current_app.config.get("FIXTURE_SYNC_COOLDOWN", 300),
            "live": current_app.config.get("LIVE_SYNC_COOLDOWN", 30),
        },
    }
