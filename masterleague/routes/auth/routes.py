import logging

from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from masterleague import db, limiter, login_manager
from masterleague.forms import bind_json_form
from masterleague.forms.auth import LoginForm, RegistrationForm, sanitize_input
from masterleague.models import User
from masterleague.routes.auth import bp

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@bp.route("/register", methods=["POST"])
@limiter.limit("5 per hour")
def register():
    if current_user.is_authenticated:
        return jsonify({"error": "Already logged in"}), 400

    form = bind_json_form(RegistrationForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    user = User(
        username=form.username.data,
        email=form.email.data.lower(),
    )
    user.set_display_name(sanitize_input(form.display_name.data))
    user.set_password(form.password.data)

    db.session.add(user)
    db.session.commit()

    login_user(user)
    logger.info(f"New user registered: {user.username} (id={user.id})")
    return jsonify({"success": True, "user": user.to_dict()}), 201


@bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    form = bind_json_form(LoginForm, request.get_json(silent=True))
    if not form.validate():
        return jsonify({"error": "Validation failed", "fields": form.errors}), 400

    user = User.query.filter_by(username=form.username.data).first()
    if not user or not user.check_password(form.password.data):
        logger.info(f"Failed login attempt for username '{form.username.data}'")
        return jsonify({"error": "Invalid username or password"}), 401

    if not user.is_active:
        return jsonify({"error": "Account has been deactivated"}), 403

    login_user(user, remember=form.remember_me.data)
    user.update_last_login()
    return jsonify({"success": True, "user": user.to_dict()})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route("/me")
@login_required
def me():
    data = current_user.to_dict()
    data["groups"] = [group.to_dict() for group in current_user.get_groups()]
    return jsonify(data)
