"""Tests for neda.core.config."""

from __future__ import annotations

from neda.core.config import CoreSettings, clear_config_cache, get_config


class TestCoreSettings:
    def test_defaults(self, clean_env):
        settings = CoreSettings(_env_file=None)
        assert settings.db_name == "neda"
        assert settings.db_pool_timeout == 10
        assert settings.db_statement_timeout_ms == 15000
        assert settings.api_key_prefix == "neda_"

    def test_env_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("NEDA_DB_HOST", "db.internal")
        monkeypatch.setenv("NEDA_DB_PORT", "6543")
        monkeypatch.setenv("NEDA_DB_STATEMENT_TIMEOUT_MS", "2500")
        settings = CoreSettings(_env_file=None)
        assert settings.db_host == "db.internal"
        assert settings.db_port == 6543
        assert settings.db_statement_timeout_ms == 2500

    def test_connection_params(self, clean_env):
        params = CoreSettings(_env_file=None, db_password="pw").connection_params
        assert params == {"host": "localhost", "port": 5432, "dbname": "neda", "user": "neda", "password": "pw"}

    def test_pool_config(self, clean_env):
        assert CoreSettings(_env_file=None).pool_config == {"minconn": 2, "maxconn": 20}


class TestGetConfig:
    def test_cached(self, clean_env):
        assert get_config() is get_config()

    def test_clear_cache(self, clean_env):
        first = get_config()
        clear_config_cache()
        assert get_config() is not first
