# backend/tests/test_config.py
"""
Tests for environment-dependent database configuration rules.
"""

import pytest
from pydantic import ValidationError

from fundledger.config import Settings


class TestDatabaseConfig:

    def test_test_environment_defaults_to_sqlite(self):
        settings = Settings(environment="test", database_url=None)

        assert settings.database_url == "sqlite:///:memory:"
        assert settings.is_sqlite is True

    def test_development_requires_url(self):
        with pytest.raises(ValidationError, match="DATABASE_URL is required"):
            Settings(environment="development", database_url=None)

    def test_development_warns_on_sqlite(self):
        with pytest.warns(UserWarning, match="SQLite"):
            Settings(environment="development", database_url="sqlite:///ledger.db")

    def test_production_requires_postgres(self):
        with pytest.raises(ValidationError, match="PostgreSQL"):
            Settings(environment="production", database_url="sqlite:///ledger.db")

    def test_production_refuses_debug(self):
        with pytest.raises(ValidationError, match="DEBUG"):
            Settings(environment="production", database_url="postgresql://u:p@db/ledger", debug=True)

    def test_production_postgres(self):
        settings = Settings(environment="production", database_url="postgresql://u:p@db/ledger")

        assert settings.is_sqlite is False
