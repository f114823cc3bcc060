"""
Leaderboard recalculation.

Standings are derived entirely from the predictions table, so a scope (one
group, or global) can always be rebuilt from scratch. Rows for a scope are
replaced in a single transaction while the scope's meta row is locked; if
anything fails the previous snapshot stays in place. The integrity check
compares stored rows with a fresh aggregate and rebuilds scopes that drifted.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from masterleague import cache, db
from masterleague.models import (
    Fixture,
    Group,
    LeaderboardEntry,
    LeaderboardMeta,
    Prediction,
    Season,
    SyncState,
    User,
)
from masterleague.models.leaderboard import scope_key_for
from masterleague.utils.cache_utils import (
    invalidate_leaderboard_cache,
    leaderboard_cache_key,
)
from masterleague.utils.fixture_status import FINISHED_STATUSES
from masterleague.utils.scoring import classify_prediction

logger = logging.getLogger(__name__)

RANK_FIELDS = ("total_points", "correct_scorelines", "correct_outcomes", "completed_fixtures")
INTEGRITY_FIELDS = RANK_FIELDS + ("predicted_fixtures",)

JOB_LEADERBOARD_INTEGRITY = "leaderboard_integrity"


class LeaderboardError(Exception):
    """Raised when a leaderboard scope cannot be resolved"""


def _resolve_season(season_id):
    if season_id is None:
        season = Season.get_current_season()
        if season is None:
            raise LeaderboardError("No active season")
        return season

    season = db.session.get(Season, season_id)
    if season is None:
        raise LeaderboardError(f"Season {season_id} not found")
    return season


def _scope_users(group_id):
    """Users ranked in a scope: a group's active members, or all active users"""
    if group_id is None:
        return User.query.filter_by(is_active=True).order_by(User.id).all()

    group = db.session.get(Group, group_id)
    if group is None:
        raise LeaderboardError(f"Group {group_id} not found")

    member_ids = group.get_active_member_ids()
    if not member_ids:
        return []
    return User.query.filter(User.id.in_(member_ids)).order_by(User.id).all()


def _season_predictions(season_id, user_ids):
    """(prediction, fixture) pairs for a season, limited to the given users"""
    if not user_ids:
        return []
    return (
        db.session.query(Prediction, Fixture)
        .join(Fixture, Prediction.fixture_id == Fixture.id)
        .filter(Fixture.season_id == season_id, Prediction.user_id.in_(user_ids))
        .order_by(Fixture.week, Fixture.id, Prediction.user_id)
        .all()
    )


def _is_scored(prediction, fixture):
    return (
        fixture.status in FINISHED_STATUSES
        and fixture.has_result
        and prediction.is_processed
        and prediction.points is not None
    )


def aggregate_standings(users, prediction_rows):
    """Per-user totals; users without predictions get zero rows"""
    totals = {
        user.id: {
            "user_id": user.id,
            "username": user.username,
            "display_name": user.full_name,
            "total_points": 0,
            "correct_scorelines": 0,
            "correct_outcomes": 0,
            "predicted_fixtures": 0,
            "completed_fixtures": 0,
        }
        for user in users
    }

    for prediction, fixture in prediction_rows:
        row = totals.get(prediction.user_id)
        if row is None:
            continue

        row["predicted_fixtures"] += 1
        if not _is_scored(prediction, fixture):
            continue

        row["completed_fixtures"] += 1
        row["total_points"] += prediction.points

        result_type = classify_prediction(
            prediction.predicted_home_score,
            prediction.predicted_away_score,
            fixture.home_score,
            fixture.away_score,
        )
        if result_type == "exact":
            row["correct_scorelines"] += 1
        elif result_type == "outcome":
            row["correct_outcomes"] += 1

    return list(totals.values())


def rank_standings(rows):
    """
    Sort standings and assign dense ranks.

    Ordered by points, correct scorelines, correct outcomes and completed
    fixtures (all descending), then user id. Users equal on all four share a
    rank.
    """
    ordered = sorted(
        rows, key=lambda r: tuple(-r[field] for field in RANK_FIELDS) + (r["user_id"],)
    )

    rank = 0
    previous_key = None
    for row in ordered:
        key = tuple(row[field] for field in RANK_FIELDS)
        if key != previous_key:
            rank += 1
            previous_key = key
        row["rank"] = rank

    return ordered


def _season_fixture_stats(season_id):
    total = Fixture.query.filter_by(season_id=season_id).count()
    finished_query = Fixture.query.filter(
        Fixture.season_id == season_id, Fixture.status.in_(FINISHED_STATUSES)
    )
    finished = finished_query.count()
    last_game_time = (
        db.session.query(db.func.max(Fixture.match_date))
        .filter(Fixture.season_id == season_id, Fixture.status.in_(FINISHED_STATUSES))
        .scalar()
    )
    return total, finished, last_game_time


def _lock_scope(group_id, season_id):
    """
    Lock the scope's meta row so concurrent rebuilds of the same scope run one
    after another. The first rebuild of a scope inserts the row; if another
    rebuild inserted it first, the unique constraint rejects ours and we wait
    on theirs instead.
    """
    meta = LeaderboardMeta.lock_for_scope(group_id, season_id)
    if meta is not None:
        return meta

    meta = LeaderboardMeta(
        group_id=group_id, scope_key=scope_key_for(group_id), season_id=season_id
    )
    db.session.add(meta)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            f"Leaderboard scope (group={group_id}, season={season_id}) created "
            f"concurrently, waiting for its lock"
        )
        meta = LeaderboardMeta.lock_for_scope(group_id, season_id)
        if meta is None:
            raise
    return meta


def recalculate_leaderboard(group_id=None, season_id=None):
    """
    Rebuild the standings of one scope.

    The scope's meta row is locked for the whole rebuild, so two rebuilds of
    the same scope never interleave their delete and insert.

    Args:
        group_id: Group to rank, or None for the global leaderboard
        season_id: Season to rank, defaults to the active season

    Returns:
        dict with group_id, season_id, users_ranked and entries (ranked rows)

    Raises:
        LeaderboardError when the season or group does not exist; any database
        error after rolling back, leaving the previous standings in place
    """
    season = _resolve_season(season_id)
    season_id = season.id
    scope_key = scope_key_for(group_id)
    if group_id is not None and db.session.get(Group, group_id) is None:
        raise LeaderboardError(f"Group {group_id} not found")

    try:
        meta = _lock_scope(group_id, season_id)

        # Read after taking the lock so a queued rebuild sees committed scores
        users = _scope_users(group_id)
        standings = rank_standings(
            aggregate_standings(users, _season_predictions(season_id, [u.id for u in users]))
        )
        now = datetime.now(timezone.utc)

        LeaderboardEntry.for_scope(group_id, season_id).delete(synchronize_session=False)

        for row in standings:
            db.session.add(
                LeaderboardEntry(
                    user_id=row["user_id"],
                    group_id=group_id,
                    scope_key=scope_key,
                    season_id=season_id,
                    total_points=row["total_points"],
                    correct_scorelines=row["correct_scorelines"],
                    correct_outcomes=row["correct_outcomes"],
                    predicted_fixtures=row["predicted_fixtures"],
                    completed_fixtures=row["completed_fixtures"],
                    rank=row["rank"],
                    last_updated=now,
                )
            )

        total, finished, last_game_time = _season_fixture_stats(season_id)
        meta.total_matches = total
        meta.finished_matches = finished
        meta.last_game_time = last_game_time
        meta.users_ranked = len(standings)
        meta.last_recalculated_at = now

        db.session.commit()

    except Exception:
        db.session.rollback()
        logger.exception(
            f"Leaderboard recalculation failed (group={group_id}, season={season_id})"
        )
        raise

    invalidate_leaderboard_cache(group_id, season_id)

    logger.info(
        f"Leaderboard recalculated (group={group_id}, season={season_id}): "
        f"{len(standings)} users"
    )
    return {
        "group_id": group_id,
        "season_id": season_id,
        "users_ranked": len(standings),
        "entries": standings,
    }


def recalculate_all_leaderboards(season_id=None):
    """Rebuild the global leaderboard and every active group's leaderboard"""
    season = _resolve_season(season_id)
    scopes = [None] + [
        group.id for group in Group.query.filter_by(is_active=True).order_by(Group.id)
    ]

    summary = {"success": True, "season_id": season.id, "scopes": 0, "errors": []}
    for group_id in scopes:
        try:
            recalculate_leaderboard(group_id=group_id, season_id=season.id)
            summary["scopes"] += 1
        except Exception as e:
            summary["errors"].append({"group_id": group_id, "error": str(e)})

    summary["success"] = not summary["errors"]
    logger.info(
        f"Recalculated {summary['scopes']} leaderboards for season {season.id} "
        f"({len(summary['errors'])} errors)"
    )
    return summary


def _scope_integrity_issues(group_id, season_id):
    """
    Compare a scope's stored rows with a fresh aggregate.

    Returns:
        tuple: (issues, users_checked) where each issue is a dict with type
        ("mismatch", "ghost", "missing" or "duplicate"), user_id,
        expected_points and actual_points
    """
    users = _scope_users(group_id)
    expected = {
        row["user_id"]: row
        for row in aggregate_standings(
            users, _season_predictions(season_id, [u.id for u in users])
        )
    }
    stored = (
        LeaderboardEntry.for_scope(group_id, season_id)
        .order_by(LeaderboardEntry.user_id, LeaderboardEntry.id)
        .all()
    )

    def issue(kind, user_id, expected_points, actual_points):
        return {
            "type": kind,
            "group_id": group_id,
            "user_id": user_id,
            "expected_points": expected_points,
            "actual_points": actual_points,
            "difference": abs(expected_points - actual_points),
        }

    issues = []
    seen = set()
    for entry in stored:
        row = expected.get(entry.user_id)
        expected_points = row["total_points"] if row else 0
        if entry.user_id in seen:
            issues.append(issue("duplicate", entry.user_id, expected_points, entry.total_points))
            continue
        seen.add(entry.user_id)

        if row is None:
            # Stored row for someone no longer in the scope
            issues.append(issue("ghost", entry.user_id, 0, entry.total_points))
        elif any(getattr(entry, field) != row[field] for field in INTEGRITY_FIELDS):
            issues.append(issue("mismatch", entry.user_id, expected_points, entry.total_points))

    for user_id, row in expected.items():
        if user_id not in seen:
            issues.append(issue("missing", user_id, row["total_points"], 0))

    return issues, len(expected)


def check_leaderboard_integrity(auto_fix=True, season_id=None):
    """
    Verify every stored leaderboard of a season against the predictions table
    and, when auto_fix is set, rebuild the scopes that have drifted.

    Returns:
        dict with success, season_id, scopes_checked, users_checked, issues,
        scopes_with_issues, auto_fixed, scopes_fixed and errors
    """
    season = _resolve_season(season_id)
    season_id = season.id
    scopes = [None] + [
        group.id for group in Group.query.filter_by(is_active=True).order_by(Group.id)
    ]

    state = SyncState.get(JOB_LEADERBOARD_INTEGRITY)
    state.mark_run()
    db.session.commit()

    result = {
        "success": True,
        "season_id": season_id,
        "scopes_checked": 0,
        "users_checked": 0,
        "issues": [],
        "scopes_with_issues": [],
        "auto_fixed": False,
        "scopes_fixed": 0,
        "errors": [],
    }

    for group_id in scopes:
        issues, users_checked = _scope_integrity_issues(group_id, season_id)
        result["scopes_checked"] += 1
        result["users_checked"] += users_checked
        if issues:
            result["issues"].extend(issues)
            result["scopes_with_issues"].append(group_id)

    if result["issues"]:
        logger.warning(
            f"Leaderboard integrity check found {len(result['issues'])} issues in "
            f"{len(result['scopes_with_issues'])} scopes (season {season_id})"
        )

    if auto_fix and result["scopes_with_issues"]:
        result["auto_fixed"] = True
        for group_id in result["scopes_with_issues"]:
            try:
                recalculate_leaderboard(group_id=group_id, season_id=season_id)
                result["scopes_fixed"] += 1
            except Exception as e:
                result["errors"].append({"group_id": group_id, "error": str(e)})

    result["success"] = not result["errors"]

    summary = {
        key: value for key, value in result.items() if key not in ("issues", "errors")
    }
    summary["issue_count"] = len(result["issues"])
    state.record_result(
        success=result["success"],
        result=summary,
        error=result["errors"][0] if result["errors"] else None,
    )
    db.session.commit()

    if not result["issues"]:
        logger.info(f"Leaderboard integrity check passed for season {season_id}")
    return result


def get_leaderboard(group_id=None, season_id=None):
    """Stored standings of a scope, calculated on first read"""
    season = _resolve_season(season_id)
    cache_key = leaderboard_cache_key("standings", group_id, season.id)

    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    meta = LeaderboardMeta.get_for_scope(group_id, season.id)
    if meta is None:
        recalculate_leaderboard(group_id=group_id, season_id=season.id)
        meta = LeaderboardMeta.get_for_scope(group_id, season.id)

    entries = (
        LeaderboardEntry.for_scope(group_id, season.id)
        .order_by(LeaderboardEntry.rank, LeaderboardEntry.user_id)
        .all()
    )
    data = {
        "group_id": group_id,
        "season_id": season.id,
        "entries": [entry.to_dict() for entry in entries],
        "meta": meta.to_dict() if meta else None,
    }

    cache.set(cache_key, data)
    return data


def _finished_weeks(season_id):
    rows = (
        db.session.query(Fixture.week)
        .filter(Fixture.season_id == season_id, Fixture.status.in_(FINISHED_STATUSES))
        .distinct()
        .order_by(Fixture.week)
        .all()
    )
    return [row[0] for row in rows]


def _weekly_breakdown(season_id, users):
    """{user_id: {week: stats}} over scored predictions"""
    breakdown = defaultdict(
        lambda: defaultdict(
            lambda: {
                "points": 0,
                "correct_scorelines": 0,
                "correct_outcomes": 0,
                "total_predictions": 0,
            }
        )
    )

    for prediction, fixture in _season_predictions(season_id, [u.id for u in users]):
        if not _is_scored(prediction, fixture):
            continue

        stats = breakdown[prediction.user_id][fixture.week]
        stats["points"] += prediction.points
        stats["total_predictions"] += 1

        result_type = classify_prediction(
            prediction.predicted_home_score,
            prediction.predicted_away_score,
            fixture.home_score,
            fixture.away_score,
        )
        if result_type == "exact":
            stats["correct_scorelines"] += 1
        elif result_type == "outcome":
            stats["correct_outcomes"] += 1

    return breakdown


def get_weekly_points(group_id=None, season_id=None):
    """
    Per-user, per-week points over finished fixtures.

    Every week with a finished fixture appears for every user, zero-filled,
    with a running cumulative total.
    """
    season = _resolve_season(season_id)
    cache_key = leaderboard_cache_key("weekly", group_id, season.id)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    users = _scope_users(group_id)
    weeks = _finished_weeks(season.id)
    breakdown = _weekly_breakdown(season.id, users)

    result_users = []
    for user in users:
        cumulative = 0
        user_weeks = []
        for week in weeks:
            stats = breakdown[user.id][week] if user.id in breakdown else None
            stats = dict(stats) if stats else {
                "points": 0,
                "correct_scorelines": 0,
                "correct_outcomes": 0,
                "total_predictions": 0,
            }
            cumulative += stats["points"]
            user_weeks.append({"week": week, **stats, "cumulative_points": cumulative})

        result_users.append(
            {
                "user_id": user.id,
                "username": user.username,
                "display_name": user.full_name,
                "total_points": cumulative,
                "weeks": user_weeks,
            }
        )

    data = {
        "group_id": group_id,
        "season_id": season.id,
        "weeks": weeks,
        "users": result_users,
    }
    cache.set(cache_key, data)
    return data


def get_ranking_history(group_id=None, season_id=None):
    """
    Cumulative points and dense rank for each user after every finished week.
    Users are returned ordered by their latest rank.
    """
    season = _resolve_season(season_id)
    cache_key = leaderboard_cache_key("history", group_id, season.id)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    weekly = get_weekly_points(group_id=group_id, season_id=season.id)
    weeks = weekly["weeks"]

    history = {
        user["user_id"]: {
            "user_id": user["user_id"],
            "username": user["username"],
            "display_name": user["display_name"],
            "history": [],
        }
        for user in weekly["users"]
    }

    for index, week in enumerate(weeks):
        week_rows = [
            {"user_id": user["user_id"], "points": user["weeks"][index]["cumulative_points"]}
            for user in weekly["users"]
        ]
        week_rows.sort(key=lambda r: (-r["points"], r["user_id"]))

        rank = 0
        previous_points = None
        for row in week_rows:
            if row["points"] != previous_points:
                rank += 1
                previous_points = row["points"]
            history[row["user_id"]]["history"].append(
                {"week": week, "cumulative_points": row["points"], "rank": rank}
            )

    users = list(history.values())
    for user in users:
        latest = user["history"][-1] if user["history"] else None
        user["latest_rank"] = latest["rank"] if latest else None
        user["latest_points"] = latest["cumulative_points"] if latest else 0

    users.sort(
        key=lambda u: (
            u["latest_rank"] if u["latest_rank"] is not None else float("inf"),
            u["user_id"],
        )
    )

    data = {
        "group_id": group_id,
        "season_id": season.id,
        "available_weeks": weeks,
        "current_week": season.calculate_current_week(),
        "users": users,
    }
    cache.set(cache_key, data)
    return data
