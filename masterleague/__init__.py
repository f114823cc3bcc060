import logging
import os

import redis
from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def _limiter_storage_uri():
    """Use Redis for shared rate limiting across workers when it is reachable"""
    redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
    if not redis_url:
        return "memory://"
    try:
        redis.Redis.from_url(redis_url).ping()
        return redis_url
    except redis.exceptions.RedisError as e:
        logger.warning(f"Redis not available for rate limiter, using memory storage: {e}")
        return "memory://"


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
)


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    if not app.config.get("TESTING"):
        app.config.setdefault("RATELIMIT_STORAGE_URI", _limiter_storage_uri())

    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = (
        False
        if app.config.get("DEBUG")
        else app.config.get("FLASK_ENV") == "production"
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    # Import and register blueprints
    from masterleague.routes.auth import bp as auth_bp

    app.register_blueprint(auth_bp, url_prefix="/auth")

    from masterleague.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    from masterleague.routes.groups import bp as groups_bp

    app.register_blueprint(groups_bp, url_prefix="/groups")

    from masterleague.routes.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/admin")

    from masterleague.routes.cron import bp as cron_bp

    app.register_blueprint(cron_bp, url_prefix="/api/cron")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from masterleague.utils.logging_config import setup_logging

    setup_logging(app)

    # Show configuration warnings
    show_config_warnings(app, config_name)

    # Create database tables outside of migration-managed environments
    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    return app


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"Master League starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("FOOTBALL_DATA_API_KEY"):
        logger.warning(
            "FOOTBALL_DATA_API_KEY not set - fixture sync will be unable to reach football-data.org"
        )

    if not app.config.get("CRON_SECRET"):
        logger.warning("CRON_SECRET not set - cron endpoints are disabled")

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        logger.info("Using SQLite database")
    elif "postgresql" in db_url:
        logger.info("Using PostgreSQL database")
    else:
        logger.info(
            f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
        )


def _error_message(error, default):
    """An abort() description if one was given, else the default text"""
    description = getattr(error, "description", None)
    if description and description != type(error).description:
        return description
    return default


def register_error_handlers(app):
    """Register global error handlers"""

    @app.after_request
    def after_request(response):
        # Add security headers to all responses
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": _error_message(error, "Bad request")}), 400

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"error": "Authentication required"}), 401

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({"error": _error_message(error, "Access forbidden")}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": _error_message(error, "Resource not found")}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        db.session.rollback()
        app.logger.exception(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({"error": "Internal server error"}), 500


from masterleague import models  # noqa: F401, E402 - imported for model registration
