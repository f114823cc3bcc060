"""
Unit tests for configuration loading
"""

import os
from unittest.mock import patch

from config import Config, ProductionConfig, TestingConfig, _env_bool, config
from masterleague import create_app, db


class TestEnvBool:
    """Boolean environment flags."""

    def test_truthy_values(self):
        for value in ("true", "True", "on", "1"):
            with patch.dict(os.environ, {"SOME_FLAG": value}):
                assert _env_bool("SOME_FLAG") is True

    def test_falsy_values(self):
        for value in ("false", "0", "off", "no"):
            with patch.dict(os.environ, {"SOME_FLAG": value}):
                assert _env_bool("SOME_FLAG") is False

    def test_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _env_bool("MISSING_FLAG") is True
            assert _env_bool("MISSING_FLAG", "false") is False


class TestDatabaseUri:
    """Database URI construction."""

    def test_database_url_wins(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg://u:p@db/league"}):
            assert Config().SQLALCHEMY_DATABASE_URI == "postgresql+psycopg://u:p@db/league"

    def test_postgresql_from_parts(self):
        env = {
            "DB_TYPE": "postgresql",
            "DB_HOST": "db.internal",
            "DB_PORT": "6543",
            "DB_NAME": "league",
            "DB_USER": "league_user",
            "DB_PASSWORD": "pw",
        }
        with patch.dict(os.environ, env, clear=True):
            uri = Config().SQLALCHEMY_DATABASE_URI
        assert uri == "postgresql+psycopg://league_user:pw@db.internal:6543/league"

    def test_sqlite_default(self):
        with patch.dict(os.environ, {}, clear=True):
            uri = Config().SQLALCHEMY_DATABASE_URI
        assert uri.startswith("sqlite:///")
        assert uri.endswith("masterleague.db")

    def test_testing_ignores_database_url(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg://u:p@db/league"}):
            assert TestingConfig().SQLALCHEMY_DATABASE_URI == "sqlite:///:memory:"


class TestConfigClasses:
    """Per-environment settings."""

    def test_mapping(self):
        assert config["testing"] is TestingConfig
        assert config["production"] is ProductionConfig
        assert config["default"] is config["development"]

    def test_football_data_defaults(self):
        assert Config.FOOTBALL_DATA_API_BASE_URL.startswith("https://")
        assert Config.FOOTBALL_DATA_BATCH_SIZE >= 1
        assert Config.FIXTURE_SYNC_COOLDOWN > Config.LIVE_SYNC_COOLDOWN

    def test_testing_app(self, app):
        assert app.config["TESTING"] is True
        assert app.config["CACHE_TYPE"] == "SimpleCache"
        assert app.config["RATELIMIT_ENABLED"] is False
        assert app.config["CRON_SECRET"] == "test-cron-secret"

    def test_tables_auto_created_outside_production(self):
        assert TestingConfig.AUTO_CREATE_TABLES is True
        assert config["development"].AUTO_CREATE_TABLES is True
        assert ProductionConfig.AUTO_CREATE_TABLES is False

    def test_create_app_leaves_schema_to_migrations(self):
        with patch.object(TestingConfig, "AUTO_CREATE_TABLES", False), patch.object(
            db, "create_all"
        ) as mock_create_all:
            create_app("testing")

        mock_create_all.assert_not_called()
