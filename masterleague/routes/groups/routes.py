import logging

from flask import abort, current_app, jsonify, request
from flask_login import current_user, login_required

from masterleague import db, limiter
from masterleague.forms import bind_json_form
from masterleague.forms.auth import sanitize_input
from masterleague.forms.groups import CreateGroupForm, JoinGroupForm
from masterleague.models import Group
from masterleague.routes.groups import bp
from masterleague.services.leaderboard_service import (
    LeaderboardError,
    get_leaderboard,
    recalculate_leaderboard,
)

logger = logging.getLogger(__name__)


def _get_member_group(group_id):
    group = db.session.get(Group, group_id)
    if group is None or not group.is_active:
        abort(404)
    if not group.is_user_member(current_user.id) and not current_user.is_admin:
        abort(403)
    return group


@bp.route("/")
@login_required
def index():
    """Groups the current user belongs to"""
    return jsonify([group.to_dict() for group in current_user.get_groups()])


@bp.route("/", methods=["POST"])
@login_required
@limiter.limit("10 per hour")
def create():
    form = bind_json_form(CreateGroupForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    group = Group(
        name=sanitize_input(form.name.data),
        description=sanitize_input(form.description.data),
        max_members=form.max_members.data
        or current_app.config.get("MAX_GROUP_MEMBERS", 50),
        creator_id=current_user.id,
    )
    db.session.add(group)
    db.session.flush()

    group.add_member(current_user, is_admin=True)
    db.session.commit()

    logger.info(f"User {current_user.id} created group {group.id} ({group.name})")
    return jsonify({"success": True, "group": group.to_dict()}), 201


@bp.route("/join", methods=["POST"])
@login_required
@limiter.limit("20 per hour")
def join():
    form = bind_json_form(JoinGroupForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    group = Group.get_by_invite_code(form.invite_code.data)
    if group is None:
        return jsonify({"error": "Invalid invite code"}), 404

    success, message = group.add_member(current_user)
    if not success:
        return jsonify({"error": message}), 400

    db.session.commit()

    # New members appear on the group leaderboard straight away
    try:
        recalculate_leaderboard(group_id=group.id)
    except LeaderboardError as e:
        logger.info(f"Skipped leaderboard refresh for group {group.id}: {e}")

    return jsonify({"success": True, "message": message, "group": group.to_dict()})


@bp.route("/<int:group_id>")
@login_required
def detail(group_id):
    group = _get_member_group(group_id)
    return jsonify(group.to_dict(include_members=True))


@bp.route("/<int:group_id>/leave", methods=["POST"])
@login_required
def leave(group_id):
    group = _get_member_group(group_id)
    if group.creator_id == current_user.id:
        return jsonify({"error": "The group creator cannot leave the group"}), 400

    success, message = group.remove_member(current_user.id)
    if not success:
        return jsonify({"error": message}), 400
    db.session.commit()

    try:
        recalculate_leaderboard(group_id=group.id)
    except LeaderboardError as e:
        logger.info(f"Skipped leaderboard refresh for group {group.id}: {e}")

    return jsonify({"success": True, "message": message})


@bp.route("/<int:group_id>/leaderboard")
@login_required
def leaderboard(group_id):
    group = _get_member_group(group_id)
    season_id = request.args.get("season_id", type=int)
    try:
        return jsonify(get_leaderboard(group_id=group.id, season_id=season_id))
    except LeaderboardError as e:
        return jsonify({"error": str(e)}), 404
