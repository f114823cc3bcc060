import logging

from flask import abort, jsonify, request
from flask_login import current_user, login_required

from masterleague import db, limiter
from masterleague.forms import bind_json_form
from masterleague.forms.predictions import PredictionForm
from masterleague.models import Fixture, Group, Prediction, Season, Team
from masterleague.routes.api import bp
from masterleague.services.leaderboard_service import (
    LeaderboardError,
    get_leaderboard,
    get_ranking_history,
    get_weekly_points,
)
from masterleague.utils.decorators import no_store

logger = logging.getLogger(__name__)

MAX_PREDICTIONS_PER_REQUEST = 20


def _season_from_args():
    """Season from ?season_id=, defaulting to the active season"""
    season_id = request.args.get("season_id", type=int)
    if season_id is not None:
        season = db.session.get(Season, season_id)
    else:
        season = Season.get_current_season()
    if season is None:
        abort(404, description="Season not found")
    return season


def _group_from_args():
    """Group from ?group_id=; the caller must be a member"""
    group_id = request.args.get("group_id", type=int)
    if group_id is None:
        return None

    group = db.session.get(Group, group_id)
    if group is None or not group.is_active:
        abort(404, description="Group not found")
    if not current_user.is_authenticated or not (
        group.is_user_member(current_user.id) or current_user.is_admin
    ):
        abort(403, description="Not a member of this group")
    return group_id


@bp.route("/health")
def health():
    """Liveness check including the database"""
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({"status": "unhealthy", "database": "unavailable"}), 503
    return jsonify({"status": "healthy", "database": "ok"})


@bp.route("/seasons/current")
def current_season():
    """Get current active season"""
    season = Season.get_current_season()
    if not season:
        return jsonify({"error": "No active season"}), 404

    data = season.to_dict()
    data["current_week"] = season.calculate_current_week()
    data["leaderboard_week"] = season.get_leaderboard_week()
    data["available_weeks"] = season.get_available_weeks()
    return jsonify(data)


@bp.route("/teams")
def teams():
    return jsonify([team.to_dict() for team in Team.get_all()])


@bp.route("/fixtures")
def fixtures():
    """Fixtures of a week (defaults to the current week)"""
    season = _season_from_args()
    week = request.args.get("week", type=int) or season.calculate_current_week()
    if week < 1 or week > season.total_weeks:
        return jsonify({"error": f"Week must be between 1 and {season.total_weeks}"}), 400

    week_fixtures = Fixture.get_fixtures_for_week(season.id, week)
    return jsonify(
        {
            "season_id": season.id,
            "week": week,
            "fixtures": [fixture.to_dict() for fixture in week_fixtures],
        }
    )


@bp.route("/fixtures/<int:fixture_id>")
def fixture_detail(fixture_id):
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None:
        abort(404)
    return jsonify(fixture.to_dict(include_prediction_count=True))


@bp.route("/predictions")
@login_required
@no_store
def my_predictions():
    """The current user's predictions for a week"""
    season = _season_from_args()
    week = request.args.get("week", type=int) or season.calculate_current_week()

    predictions = Prediction.get_for_user_week(current_user.id, season.id, week)
    return jsonify(
        {
            "season_id": season.id,
            "week": week,
            "predictions": [p.to_dict(include_fixture=True) for p in predictions],
        }
    )


@bp.route("/predictions", methods=["POST"])
@login_required
@limiter.limit("60 per minute")
@no_store
def submit_predictions():
    """
    Create or update predictions.

    Body: {"predictions": [{"fixture_id": 1, "home_score": 2, "away_score": 1}]}
    Every entry is validated before anything is saved; fixtures that have
    already kicked off are rejected individually.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not isinstance(payload.get("predictions"), list):
        return jsonify({"error": "Expected a 'predictions' list"}), 400

    items = payload["predictions"]
    if not items:
        return jsonify({"error": "No predictions provided"}), 400
    if len(items) > MAX_PREDICTIONS_PER_REQUEST:
        return (
            jsonify(
                {"error": f"At most {MAX_PREDICTIONS_PER_REQUEST} predictions per request"}
            ),
            400,
        )

    forms = []
    field_errors = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            field_errors[str(index)] = {"prediction": ["Must be an object"]}
            continue
        form = bind_json_form(PredictionForm, item)
        if not form.validate():
            field_errors[str(index)] = form.errors
        forms.append(form)

    if field_errors:
        return jsonify({"error": "Validation failed", "fields": field_errors}), 400

    fixture_ids = [form.fixture_id.data for form in forms]
    if len(set(fixture_ids)) != len(fixture_ids):
        return jsonify({"error": "Duplicate fixture in request"}), 400

    fixtures_by_id = {
        fixture.id: fixture
        for fixture in Fixture.query.filter(Fixture.id.in_(fixture_ids)).all()
    }

    saved = []
    rejected = []
    for form in forms:
        fixture = fixtures_by_id.get(form.fixture_id.data)
        if fixture is None:
            rejected.append({"fixture_id": form.fixture_id.data, "error": "Fixture not found"})
            continue

        prediction, message = Prediction.upsert(
            current_user.id, fixture, form.home_score.data, form.away_score.data
        )
        if prediction is None:
            rejected.append({"fixture_id": fixture.id, "error": message})
            continue
        saved.append(prediction)

    db.session.commit()

    logger.info(
        f"User {current_user.id} saved {len(saved)} predictions ({len(rejected)} rejected)"
    )
    status = 200 if saved else 400
    return (
        jsonify(
            {
                "success": bool(saved),
                "saved": [prediction.to_dict() for prediction in saved],
                "rejected": rejected,
            }
        ),
        status,
    )


@bp.route("/leaderboard")
def leaderboard():
    season = _season_from_args()
    group_id = _group_from_args()
    try:
        return jsonify(get_leaderboard(group_id=group_id, season_id=season.id))
    except LeaderboardError as e:
        return jsonify({"error": str(e)}), 404


@bp.route("/leaderboard/weekly")
def leaderboard_weekly():
    season = _season_from_args()
    group_id = _group_from_args()
    try:
        return jsonify(get_weekly_points(group_id=group_id, season_id=season.id))
    except LeaderboardError as e:
        return jsonify({"error": str(e)}), 404


@bp.route("/leaderboard/history")
def leaderboard_history():
    season = _season_from_args()
    group_id = _group_from_args()
    try:
        return jsonify(get_ranking_history(group_id=group_id, season_id=season.id))
    except LeaderboardError as e:
        return jsonify({"error": str(e)}), 404
