import logging
from datetime import datetime, timezone

from flask import abort, jsonify, request
from flask_login import current_user, login_required

from masterleague import db
from masterleague.forms import bind_json_form
from masterleague.forms.admin import FixtureResultForm, MultiplierForm, SafetyCheckForm
from masterleague.models import Fixture, Season
from masterleague.routes.admin import bp
from masterleague.services.fixture_sync_service import (
    check_and_update_recent_fixtures,
    get_sync_status,
)
from masterleague.services.leaderboard_service import (
    LeaderboardError,
    recalculate_all_leaderboards,
    recalculate_leaderboard,
)
from masterleague.services.multiplier_service import (
    set_fixture_multiplier,
    set_random_multipliers_for_week,
)
from masterleague.services.prediction_processor import (
    process_predictions_for_fixture,
    update_predictions,
)
from masterleague.services.safety_service import (
    fix_specific_fixture,
    fix_unprocessed_predictions,
)
from masterleague.utils.cache_utils import get_cache_stats
from masterleague.utils.decorators import admin_required

logger = logging.getLogger(__name__)


def _get_fixture(fixture_id):
    fixture = db.session.get(Fixture, fixture_id)
    if fixture is None:
        abort(404)
    return fixture


@bp.route("/fixtures/<int:fixture_id>/result", methods=["POST"])
@login_required
@admin_required
def set_fixture_result(fixture_id):
    """Override a fixture's result, score its predictions and refresh leaderboards"""
    fixture = _get_fixture(fixture_id)
    was_scoreable = fixture.is_scoreable
    form = bind_json_form(FixtureResultForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    fixture.status = form.status.data
    fixture.home_score = form.home_score.data
    fixture.away_score = form.away_score.data
    fixture.last_synced_at = datetime.now(timezone.utc)
    db.session.commit()

    logger.warning(
        f"Admin {current_user.id} set fixture {fixture.id} result to "
        f"{fixture.status} {fixture.home_score}-{fixture.away_score}"
    )

    response = {"success": True, "fixture": fixture.to_dict()}
    if fixture.is_scoreable:
        response["processing"] = process_predictions_for_fixture(fixture.id)
        response["leaderboards"] = recalculate_all_leaderboards(fixture.season_id)
    elif was_scoreable:
        # Standings stop counting a fixture once it is no longer finished
        response["leaderboards"] = recalculate_all_leaderboards(fixture.season_id)

    return jsonify(response)


@bp.route("/fixtures/<int:fixture_id>/multiplier", methods=["PUT"])
@login_required
@admin_required
def set_multiplier(fixture_id):
    _get_fixture(fixture_id)
    form = bind_json_form(MultiplierForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    fixture, message = set_fixture_multiplier(fixture_id, form.multiplier.data)
    if fixture is None:
        return jsonify({"error": message}), 400
    return jsonify({"success": True, "message": message, "fixture": fixture.to_dict()})


@bp.route("/fixtures/week/<int:week>/multipliers", methods=["POST"])
@login_required
@admin_required
def random_week_multipliers(week):
    season_id = request.args.get("season_id", type=int)
    season = db.session.get(Season, season_id) if season_id else Season.get_current_season()
    if season is None:
        return jsonify({"error": "No active season"}), 404

    success, message, assignments = set_random_multipliers_for_week(season.id, week)
    if not success:
        return jsonify({"error": message}), 400
    return jsonify(
        {
            "success": True,
            "message": message,
            "multipliers": {str(k): v for k, v in assignments.items()},
        }
    )


@bp.route("/fixtures/<int:fixture_id>/reprocess", methods=["POST"])
@login_required
@admin_required
def reprocess_fixture(fixture_id):
    result = fix_specific_fixture(fixture_id)
    if not result["success"]:
        return jsonify(result), 400
    result["previous_points"] = {str(k): v for k, v in result["previous_points"].items()}
    return jsonify(result)


@bp.route("/leaderboard/recalculate", methods=["POST"])
@login_required
@admin_required
def recalculate():
    """Recalculate one scope (?group_id=) or every scope of the season"""
    group_id = request.args.get("group_id", type=int)
    season_id = request.args.get("season_id", type=int)
    scope = request.args.get("scope", "all")

    try:
        if group_id is not None or scope == "global":
            result = recalculate_leaderboard(group_id=group_id, season_id=season_id)
            result = {
                "success": True,
                "group_id": result["group_id"],
                "season_id": result["season_id"],
                "users_ranked": result["users_ranked"],
            }
        else:
            result = recalculate_all_leaderboards(season_id)
    except LeaderboardError as e:
        return jsonify({"success": False, "error": str(e)}), 404

    return jsonify(result)


@bp.route("/predictions/update", methods=["POST"])
@login_required
@admin_required
def run_update_predictions():
    season_id = request.args.get("season_id", type=int)
    result = update_predictions(season_id=season_id)
    status = 200 if result.get("success") else 500
    if "error" in result:
        status = 404
    return jsonify(result), status


@bp.route("/safety-check", methods=["POST"])
@login_required
@admin_required
def safety_check():
    form = bind_json_form(SafetyCheckForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    season_id = request.args.get("season_id", type=int)
    result = fix_unprocessed_predictions(days_back=form.days_back.data, season_id=season_id)
    return jsonify(result)


@bp.route("/sync", methods=["POST"])
@login_required
@admin_required
def force_sync():
    force = request.args.get("force", "true").lower() in ["true", "1", "yes"]
    result = check_and_update_recent_fixtures(force=force)
    return jsonify(result)


@bp.route("/sync/status")
@login_required
@admin_required
def sync_status():
    status = get_sync_status()
    status["cache"] = get_cache_stats()
    return jsonify(status)
