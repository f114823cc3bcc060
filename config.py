import os
import secrets
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _env_bool(name, default="True"):
    return os.environ.get(name, default).lower() in ["true", "on", "1"]


class Config:
    # Generate a secure key if not provided (with warning)
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "🔐 SECRET_KEY not set! Using auto-generated key. "
            "This will cause sessions to reset on app restart.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "masterleague_db"
            db_user = os.environ.get("DB_USER") or "masterleague"
            db_password = os.environ.get("DB_PASSWORD") or "masterleague"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "masterleague.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # football-data.org API configuration
    FOOTBALL_DATA_API_KEY = os.environ.get("FOOTBALL_DATA_API_KEY")
    FOOTBALL_DATA_API_BASE_URL = (
        os.environ.get("FOOTBALL_DATA_API_BASE_URL")
        or "https://api.football-data.org/v4"
    )
    FOOTBALL_DATA_COMPETITION = os.environ.get("FOOTBALL_DATA_COMPETITION", "PL")
    FOOTBALL_DATA_CALLS_PER_MINUTE = int(
        os.environ.get("FOOTBALL_DATA_CALLS_PER_MINUTE") or 10
    )  # Free tier limit
    FOOTBALL_DATA_BATCH_SIZE = int(os.environ.get("FOOTBALL_DATA_BATCH_SIZE") or 5)
    FOOTBALL_DATA_TIMEOUT = int(os.environ.get("FOOTBALL_DATA_TIMEOUT") or 30)

    # Fixture sync configuration (seconds)
    FIXTURE_SYNC_COOLDOWN = int(os.environ.get("FIXTURE_SYNC_COOLDOWN") or 300)
    LIVE_SYNC_COOLDOWN = int(os.environ.get("LIVE_SYNC_COOLDOWN") or 30)
    SYNC_MAX_WORKERS = int(os.environ.get("SYNC_MAX_WORKERS") or 3)
    SAFETY_CHECK_DAYS = int(os.environ.get("SAFETY_CHECK_DAYS") or 7)

    # Shared secret for the cron trigger endpoints
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Worker (APScheduler) intervals, used by `manage.py worker`
    WORKER_SYNC_INTERVAL = int(os.environ.get("WORKER_SYNC_INTERVAL") or 60)
    WORKER_SAFETY_HOUR = int(os.environ.get("WORKER_SAFETY_HOUR") or 3)

    # Application settings
    TOTAL_WEEKS = int(os.environ.get("TOTAL_WEEKS") or 38)
    MAX_GROUP_MEMBERS = int(os.environ.get("MAX_GROUP_MEMBERS") or 50)
    TIMEZONE = os.environ.get("TIMEZONE", "Europe/London")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "masterleague:"

    # Rate limiting
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED")
    RATELIMIT_HEADERS_ENABLED = True

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = _env_bool("LOG_TO_CONSOLE")
    LOG_TO_FILE = _env_bool("LOG_TO_FILE")
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False

    # Schema is managed by Flask-Migrate unless a config opts in
    AUTO_CREATE_TABLES = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    AUTO_CREATE_TABLES = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        if self.CACHE_TYPE == "RedisCache":
            try:
                redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
                redis_client.ping()
            except redis.exceptions.RedisError:
                self.CACHE_TYPE = "SimpleCache"
                warnings.warn(
                    "🔶 Redis not available, falling back to SimpleCache for development.",
                    UserWarning,
                )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    # In production, require explicit environment variables
    def __init__(self):
        super().__init__()  # Call parent __init__ to build database URI

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "🚨 PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )
        if not self.CRON_SECRET:
            warnings.warn(
                "🚨 PRODUCTION WARNING: CRON_SECRET not set! "
                "Cron endpoints will reject every request.",
                UserWarning,
            )
        if not self.FOOTBALL_DATA_API_KEY:
            warnings.warn(
                "🚨 PRODUCTION WARNING: FOOTBALL_DATA_API_KEY not set!",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTO_CREATE_TABLES = True
    WTF_CSRF_ENABLED = False
    CACHE_TYPE = "SimpleCache"
    RATELIMIT_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    CRON_SECRET = "test-cron-secret"
    FOOTBALL_DATA_API_KEY = "test-api-key"
    FOOTBALL_DATA_CALLS_PER_MINUTE = 1000

    def __init__(self):
        # Keep the in-memory database regardless of DATABASE_URL
        pass


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
