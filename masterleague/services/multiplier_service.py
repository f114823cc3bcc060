"""
Points multipliers for featured fixtures.

Changing the multiplier of a fixture that already has a final result
re-scores its predictions and rebuilds the season's leaderboards, so stored
points always follow the current multiplier.
"""

import logging
import random

from masterleague import db
from masterleague.models import Fixture
from masterleague.services.prediction_processor import process_predictions_for_fixture

logger = logging.getLogger(__name__)

MAX_MULTIPLIER = 3


def _rescore(fixtures):
    """Re-score finished fixtures and refresh the leaderboards of their seasons"""
    scored = [fixture for fixture in fixtures if fixture.is_scoreable]
    if not scored:
        return 0

    changed = 0
    for fixture in scored:
        changed += process_predictions_for_fixture(fixture.id)["changed"]

    if changed:
        from masterleague.services.leaderboard_service import (
            recalculate_all_leaderboards,
        )

        for season_id in sorted({fixture.season_id for fixture in scored}):
            recalculate_all_leaderboards(season_id)

    logger.info(
        f"Re-scored {len(scored)} finished fixtures after a multiplier change: "
        f"{changed} predictions changed"
    )
    return changed


def set_fixture_multiplier(fixture_id, multiplier):
    """
    Set the multiplier of one fixture.

    Returns:
        tuple: (fixture or None, message)
    """
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None:
        return None, "Fixture not found"

    if isinstance(multiplier, bool) or not isinstance(multiplier, int):
        return None, "Multiplier must be an integer"
    if multiplier < 1 or multiplier > MAX_MULTIPLIER:
        return None, f"Multiplier must be between 1 and {MAX_MULTIPLIER}"

    previous = fixture.points_multiplier
    fixture.points_multiplier = multiplier
    db.session.commit()
    logger.info(f"Fixture {fixture_id} multiplier set to {multiplier}")

    if previous != multiplier and _rescore([fixture]):
        return fixture, "Multiplier updated and predictions re-scored"
    return fixture, "Multiplier updated"


def set_random_multipliers_for_week(season_id, week, rng=None):
    """
    Give one fixture of the week 3x points and a different one 2x; the rest
    go back to 1x.

    Returns:
        tuple: (success, message, {fixture_id: multiplier})
    """
    rng = rng or random.SystemRandom()
    fixtures = Fixture.get_fixtures_for_week(season_id, week)

    if len(fixtures) < 2:
        return False, f"Week {week} needs at least two fixtures", {}

    triple, double = rng.sample(fixtures, 2)

    assignments = {}
    changed_fixtures = []
    for fixture in fixtures:
        if fixture.id == triple.id:
            multiplier = 3
        elif fixture.id == double.id:
            multiplier = 2
        else:
            multiplier = 1
        if fixture.points_multiplier != multiplier:
            changed_fixtures.append(fixture)
        fixture.points_multiplier = multiplier
        assignments[fixture.id] = multiplier

    db.session.commit()
    logger.info(
        f"Week {week} multipliers: fixture {triple.id} x3, fixture {double.id} x2"
    )

    _rescore(changed_fixtures)
    return True, f"Set multipliers for week {week}", assignments
