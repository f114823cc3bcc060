"""
Endpoints for an external scheduler. Each call is safe to repeat: the
services apply their own cooldowns and are idempotent.
"""

import logging

from flask import current_app, jsonify, request

from masterleague import limiter
from masterleague.routes.cron import bp
from masterleague.services.fixture_sync_service import (
    check_and_update_recent_fixtures,
    recover_missed_fixtures,
)
from masterleague.services.leaderboard_service import (
    LeaderboardError,
    check_leaderboard_integrity,
)
from masterleague.services.safety_service import fix_unprocessed_predictions
from masterleague.utils.decorators import cron_auth_required

logger = logging.getLogger(__name__)


@bp.route("/fixture-sync", methods=["POST"])
@limiter.exempt
@cron_auth_required
def fixture_sync():
    force = request.args.get("force", "false").lower() in ["true", "1", "yes"]
    result = check_and_update_recent_fixtures(force=force)
    return jsonify({"success": not result["errors"], **result})


@bp.route("/safety-check", methods=["POST"])
@limiter.exempt
@cron_auth_required
def safety_check():
    days_back = request.args.get(
        "days", default=current_app.config.get("SAFETY_CHECK_DAYS", 7), type=int
    )
    if days_back < 1 or days_back > 60:
        return jsonify({"error": "days must be between 1 and 60"}), 400

    return jsonify(fix_unprocessed_predictions(days_back=days_back))


@bp.route("/recover-missed", methods=["POST"])
@limiter.exempt
@cron_auth_required
def recover_missed():
    return jsonify(recover_missed_fixtures())


@bp.route("/leaderboard-integrity-check", methods=["GET", "POST"])
@limiter.exempt
@cron_auth_required
def leaderboard_integrity_check():
    """POST checks and repairs (?auto_fix=false to only report); GET only reports"""
    auto_fix = request.method == "POST" and request.args.get(
        "auto_fix", "true"
    ).lower() in ["true", "1", "yes"]
    season_id = request.args.get("season_id", type=int)

    try:
        result = check_leaderboard_integrity(auto_fix=auto_fix, season_id=season_id)
    except LeaderboardError as e:
        return jsonify({"success": False, "error": str(e)}), 404

    return jsonify(result), 200 if result["success"] else 500
