"""
Scoring rules for score predictions.

An exact scoreline is worth 3 points, the correct outcome (home win, away win
or draw) is worth 1 point, anything else is worth nothing. Both are scaled by
the fixture's points multiplier. Leaderboard aggregation lives in
masterleague/services/leaderboard_service.py.
"""

EXACT_SCORE_POINTS = 3
CORRECT_OUTCOME_POINTS = 1

OUTCOME_HOME = "home"
OUTCOME_AWAY = "away"
OUTCOME_DRAW = "draw"


def get_match_outcome(home_score, away_score):
    """Return 'home', 'away' or 'draw', or None when either score is missing"""
    if home_score is None or away_score is None:
        return None
    if home_score > away_score:
        return OUTCOME_HOME
    if home_score < away_score:
        return OUTCOME_AWAY
    return OUTCOME_DRAW


def is_valid_prediction(home_score, away_score):
    """Check that both predicted goals are non-negative integers"""
    for value in (home_score, away_score):
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        if value < 0:
            return False
    return True


def calculate_prediction_points(
    predicted_home, predicted_away, actual_home, actual_away, multiplier=1
):
    """
    Calculate points for a single prediction.

    Returns:
        3 * multiplier for the exact score
        1 * multiplier for the correct outcome only
        0 otherwise, or when the actual score is not known
    """
    if actual_home is None or actual_away is None:
        return 0

    if predicted_home == actual_home and predicted_away == actual_away:
        return EXACT_SCORE_POINTS * multiplier

    if get_match_outcome(predicted_home, predicted_away) == get_match_outcome(
        actual_home, actual_away
    ):
        return CORRECT_OUTCOME_POINTS * multiplier

    return 0


def classify_prediction(predicted_home, predicted_away, actual_home, actual_away):
    """Return 'exact', 'outcome' or 'miss'; None while the result is unknown"""
    if actual_home is None or actual_away is None:
        return None
    if predicted_home == actual_home and predicted_away == actual_away:
        return "exact"
    if get_match_outcome(predicted_home, predicted_away) == get_match_outcome(
        actual_home, actual_away
    ):
        return "outcome"
    return "miss"
