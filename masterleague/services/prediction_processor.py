"""
Scores predictions once a fixture has a final result.

Processing is idempotent: running it again for the same fixture recomputes
every prediction and writes the same values.
"""

import logging
from datetime import datetime, timezone

from masterleague import db
from masterleague.models import Fixture, Prediction, Season
from masterleague.utils.scoring import calculate_prediction_points

logger = logging.getLogger(__name__)


def _empty_result(fixture_id, reason=None):
    result = {
        "fixture_id": fixture_id,
        "processed": 0,
        "points_allocated": 0,
        "users_affected": 0,
        "user_ids": [],
        "changed": 0,
    }
    if reason:
        result["skipped"] = reason
    return result


def process_predictions_for_fixture(fixture_id):
    """
    Score every prediction of one fixture.

    Does nothing unless the fixture is finished with both scores known. All
    writes for the fixture are committed together; on error the session is
    rolled back and the exception re-raised.

    Returns:
        dict with processed, points_allocated, users_affected, user_ids and
        changed (predictions whose points differed from the stored value)
    """
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None:
        logger.warning(f"Cannot process predictions: fixture {fixture_id} not found")
        return _empty_result(fixture_id, "not_found")

    if not fixture.is_scoreable:
        logger.debug(
            f"Fixture {fixture_id} not ready for scoring (status={fixture.status}, "
            f"score={fixture.home_score}-{fixture.away_score})"
        )
        return _empty_result(fixture_id, "not_finished")

    multiplier = fixture.points_multiplier or 1
    now = datetime.now(timezone.utc)
    result = _empty_result(fixture_id)
    user_ids = set()

    try:
        predictions = Prediction.query.filter_by(fixture_id=fixture.id).all()

        for prediction in predictions:
            points = calculate_prediction_points(
                prediction.predicted_home_score,
                prediction.predicted_away_score,
                fixture.home_score,
                fixture.away_score,
                multiplier,
            )

            if prediction.points != points or not prediction.is_processed:
                result["changed"] += 1

            prediction.points = points
            prediction.is_processed = True
            prediction.processed_at = now

            result["processed"] += 1
            result["points_allocated"] += points
            user_ids.add(prediction.user_id)

        db.session.commit()

    except Exception:
        db.session.rollback()
        logger.exception(f"Failed to process predictions for fixture {fixture_id}")
        raise

    result["user_ids"] = sorted(user_ids)
    result["users_affected"] = len(user_ids)

    logger.info(
        f"Processed {result['processed']} predictions for fixture {fixture_id} "
        f"({fixture.home_score}-{fixture.away_score}, x{multiplier}): "
        f"{result['points_allocated']} points, {result['changed']} changed"
    )
    return result


def get_fixtures_with_unprocessed_predictions(season_id=None, since=None):
    """Finished fixtures with a result that still have unscored predictions"""
    from masterleague.utils.fixture_status import FINISHED_STATUSES

    query = (
        Fixture.query.join(Prediction, Prediction.fixture_id == Fixture.id)
        .filter(
            Fixture.status.in_(FINISHED_STATUSES),
            Fixture.home_score.isnot(None),
            Fixture.away_score.isnot(None),
            db.or_(Prediction.is_processed.is_(False), Prediction.points.is_(None)),
        )
        .distinct()
    )
    if season_id is not None:
        query = query.filter(Fixture.season_id == season_id)
    if since is not None:
        query = query.filter(Fixture.match_date >= since)

    return query.order_by(Fixture.match_date, Fixture.id).all()


def update_predictions(season_id=None, recalculate=True):
    """
    Score every finished fixture of a season that still has unprocessed
    predictions, then refresh the season's leaderboards if anything changed.
    """
    if season_id is None:
        season = Season.get_current_season()
        if not season:
            return {"success": False, "error": "No active season"}
        season_id = season.id

    fixtures = get_fixtures_with_unprocessed_predictions(season_id=season_id)
    fixture_ids = [fixture.id for fixture in fixtures]

    summary = {
        "success": True,
        "fixtures_processed": 0,
        "predictions_processed": 0,
        "points_allocated": 0,
        "errors": [],
    }

    for fixture_id in fixture_ids:
        try:
            result = process_predictions_for_fixture(fixture_id)
        except Exception as e:
            summary["errors"].append({"fixture_id": fixture_id, "error": str(e)})
            continue
        summary["fixtures_processed"] += 1
        summary["predictions_processed"] += result["processed"]
        summary["points_allocated"] += result["points_allocated"]

    if recalculate and summary["predictions_processed"]:
        from masterleague.services.leaderboard_service import (
            recalculate_all_leaderboards,
        )

        summary["leaderboards"] = recalculate_all_leaderboards(season_id)

    summary["success"] = not summary["errors"]
    logger.info(
        f"update_predictions: {summary['fixtures_processed']} fixtures, "
        f"{summary['predictions_processed']} predictions, {len(summary['errors'])} errors"
    )
    return summary
