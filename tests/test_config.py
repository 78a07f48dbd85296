"""Tests for configuration helpers."""
from imagegate.config import TestingConfig, _engine_options


def test_postgres_engine_bounds_connect_and_statements():
    options = _engine_options("postgresql://u:p@db:5432/imagegate", 3, 4000)
    assert options["connect_args"] == {
        "connect_timeout": 3,
        "options": "-c statement_timeout=4000",
    }
    assert options["pool_timeout"] == 10


def test_sqlite_engine_gets_no_postgres_connect_args():
    options = _engine_options("sqlite:///imagegate_dev.db", 3, 4000)
    assert "connect_args" not in options


def test_testing_config_uses_in_memory_sqlite(app):
    assert TestingConfig.SQLALCHEMY_ENGINE_OPTIONS == {}
    assert app.config["DB_STATEMENT_TIMEOUT_MS"] > 0
