import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user

logger = logging.getLogger(__name__)


def admin_required(f):
    """Restrict a view to site admins"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Authentication required"}), 401
        if not current_user.is_admin:
            logger.warning(
                f"Non-admin user {current_user.id} attempted to access {request.path}"
            )
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def cron_auth_required(f):
    """Require `Authorization: Bearer <CRON_SECRET>`"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            logger.error("Cron request rejected: CRON_SECRET is not configured")
            return jsonify({"error": "Cron endpoints are not configured"}), 503

        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(
            token.strip().encode(), secret.encode()
        ):
            logger.warning(f"Unauthorized cron request to {request.path}")
            return jsonify({"error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function


def no_store(f):
    """Mark a JSON response as uncacheable by clients"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = current_app.make_response(f(*args, **kwargs))
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    return decorated_function
