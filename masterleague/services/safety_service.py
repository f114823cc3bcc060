"""
Repairs scoring that the sync poller missed, e.g. when processing failed
after a fixture was marked finished.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from masterleague import db
from masterleague.models import Fixture, Prediction, SyncState
from masterleague.services.prediction_processor import (
    get_fixtures_with_unprocessed_predictions,
    process_predictions_for_fixture,
)

logger = logging.getLogger(__name__)

JOB_SAFETY_CHECK = "safety_check"


def fix_unprocessed_predictions(days_back=None, season_id=None, recalculate=True):
    """
    Score finished fixtures from the last `days_back` days that still have
    unprocessed predictions.

    Safe to run repeatedly: a second run over the same window finds nothing.

    Returns:
        dict with success, fixtures_checked, predictions_fixed,
        points_awarded and errors
    """
    if days_back is None:
        days_back = current_app.config.get("SAFETY_CHECK_DAYS", 7)

    now = datetime.now(timezone.utc)
    since = now - timedelta(days=days_back)

    state = SyncState.get(JOB_SAFETY_CHECK)
    state.mark_run(now)
    db.session.commit()

    fixtures = get_fixtures_with_unprocessed_predictions(season_id=season_id, since=since)
    fixture_ids = [(fixture.id, fixture.season_id) for fixture in fixtures]

    result = {
        "success": True,
        "fixtures_checked": len(fixture_ids),
        "predictions_fixed": 0,
        "points_awarded": 0,
        "errors": [],
    }
    fixed_seasons = set()

    logger.info(
        f"Safety check: {len(fixture_ids)} fixtures with unprocessed predictions "
        f"in the last {days_back} days"
    )

    for fixture_id, fixture_season_id in fixture_ids:
        try:
            processed = process_predictions_for_fixture(fixture_id)
        except Exception as e:
            result["errors"].append({"fixture_id": fixture_id, "error": str(e)})
            continue

        if processed["changed"]:
            fixed_seasons.add(fixture_season_id)
        result["predictions_fixed"] += processed["changed"]
        result["points_awarded"] += processed["points_allocated"]

    if recalculate and fixed_seasons:
        from masterleague.services.leaderboard_service import (
            recalculate_all_leaderboards,
        )

        for fixed_season_id in sorted(fixed_seasons):
            summary = recalculate_all_leaderboards(fixed_season_id)
            for error in summary["errors"]:
                result["errors"].append({"leaderboard": error})

    result["success"] = not result["errors"]

    summary = {key: value for key, value in result.items() if key != "errors"}
    summary["error_count"] = len(result["errors"])
    state.record_result(
        success=result["success"],
        result=summary,
        error=result["errors"][0] if result["errors"] else None,
    )
    db.session.commit()

    if result["predictions_fixed"]:
        logger.warning(
            f"Safety check fixed {result['predictions_fixed']} predictions "
            f"across {len(fixture_ids)} fixtures"
        )
    else:
        logger.info("Safety check found nothing to fix")

    return result


def fix_specific_fixture(fixture_id, recalculate=True):
    """Re-score one fixture regardless of its processed flags"""
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None:
        return {"success": False, "error": f"Fixture {fixture_id} not found"}

    if not fixture.is_scoreable:
        return {
            "success": False,
            "error": f"Fixture {fixture_id} is not finished with a final score",
        }

    before = {
        prediction.id: prediction.points
        for prediction in Prediction.query.filter_by(fixture_id=fixture_id)
    }

    try:
        processed = process_predictions_for_fixture(fixture_id)
    except Exception as e:
        return {"success": False, "error": str(e)}

    result = {
        "success": True,
        "fixture_id": fixture_id,
        "predictions_checked": processed["processed"],
        "predictions_fixed": processed["changed"],
        "points_awarded": processed["points_allocated"],
        "previous_points": before,
    }

    if recalculate and processed["changed"]:
        from masterleague.services.leaderboard_service import (
            recalculate_all_leaderboards,
        )

        result["leaderboards"] = recalculate_all_leaderboards(fixture.season_id)

    logger.info(
        f"Re-scored fixture {fixture_id}: {processed['changed']} of "
        f"{processed['processed']} predictions changed"
    )
    return result
