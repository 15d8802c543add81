"""
Unit tests for configuration loading.
"""

from unittest.mock import patch

import pytest

from tutor_billing.utils.config import Config, SecureString


ENV_VARS = [
    "AIRTABLE_API_KEY",
    "AIRTABLE_BASE_ID",
    "AIRTABLE_API_URL",
    "AIRTABLE_TABLE_MONTHLY_BILLS",
    "BILLING_SOLO_UNIT_PRICE",
    "BILLING_TIMEZONE",
    "BILLING_MAX_WORKERS",
    "STORE_TIMEOUT",
    "STORE_MAX_RETRIES",
    "OUTPUT_DIR",
    "LOG_LEVEL",
]


@pytest.fixture
def env(monkeypatch):
    """Clean environment with required values set; .env files are ignored."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AIRTABLE_API_KEY", "patTEST.secret")
    monkeypatch.setenv("AIRTABLE_BASE_ID", "appBase")

    with patch("tutor_billing.utils.config.load_dotenv"):
        yield monkeypatch


class TestSecureString:
    """Test cases for SecureString."""

    def test_masked_representations(self):
        token = SecureString("patTEST.secret")

        assert str(token) == "********"
        assert "secret" not in repr(token)
        assert token.get_value() == "patTEST.secret"

    def test_equality(self):
        assert SecureString("a") == SecureString("a")
        assert SecureString("a") != "a"


class TestConfig:
    """Test cases for Config."""

    def test_defaults(self, env):
        config = Config()

        assert config.validate()
        assert config.solo_unit_price == 175
        assert config.timezone == "Asia/Jerusalem"
        assert config.max_workers == 1
        assert config.store_max_retries == 3
        assert config.tables.monthly_bills == "MonthlyBills"
        assert config.reports_dir.as_posix() == "output/billing_reports"

    def test_overrides(self, env):
        env.setenv("BILLING_SOLO_UNIT_PRICE", "200")
        env.setenv("BILLING_MAX_WORKERS", "4")
        env.setenv("AIRTABLE_TABLE_MONTHLY_BILLS", "Charges")
        env.setenv("LOG_LEVEL", "debug")

        config = Config()

        assert config.solo_unit_price == 200
        assert config.max_workers == 4
        assert config.field_map().tables.monthly_bills == "Charges"
        assert config.log_level == "DEBUG"

    def test_missing_credentials(self, env):
        env.delenv("AIRTABLE_API_KEY")
        env.delenv("AIRTABLE_BASE_ID")

        config = Config()

        with pytest.raises(ValueError) as exc_info:
            config.validate()
        assert "AIRTABLE_API_KEY is required" in str(exc_info.value)
        assert "AIRTABLE_BASE_ID is required" in str(exc_info.value)

        with pytest.raises(ValueError):
            config.airtable_base_id

    @pytest.mark.parametrize("name, value, message", [
        ("BILLING_SOLO_UNIT_PRICE", "0", "must be positive"),
        ("BILLING_MAX_WORKERS", "0", "at least 1"),
        ("BILLING_TIMEZONE", "Mars/Olympus", "not a known time zone"),
        ("LOG_LEVEL", "LOUD", "LOG_LEVEL must be one of"),
    ])
    def test_invalid_values(self, env, name, value, message):
        env.setenv(name, value)

        with pytest.raises(ValueError, match=message):
            Config().validate()

    def test_non_numeric_setting(self, env):
        env.setenv("STORE_TIMEOUT", "soon")

        with pytest.raises(ValueError, match="STORE_TIMEOUT must be a number"):
            Config()

    def test_invalid_api_url(self, env):
        env.setenv("AIRTABLE_API_URL", "not a url")

        with pytest.raises(ValueError):
            Config()
