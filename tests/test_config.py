"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Settings are built with _env_file=None so a developer's local .env never
leaks into the assertions. Environment overrides go through monkeypatch.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


class TestSettingsDefaults:
    def test_policy_defaults(self, settings):
        assert settings.replacement_policy_years == 3.0
        assert settings.replacement_upper_bound_years == 5.0
        assert settings.inactivity_days == 30
        assert settings.unsupported_os_majors == [10]

    def test_provisioner_ids_normalised(self):
        settings = Settings(_env_file=None, provisioner_ids=[" BH4HB ", "", "Jww8je"])
        assert settings.provisioner_ids == ["bh4hb", "jww8je"]


class TestSettingsValidation:
    def test_upper_bound_below_policy_rejected(self):
        with pytest.raises(ValidationError, match="REPLACEMENT_UPPER_BOUND_YEARS"):
            Settings(_env_file=None, replacement_policy_years=4.0, replacement_upper_bound_years=3.0)

    def test_warning_window_larger_than_policy_rejected(self):
        with pytest.raises(ValidationError, match="WARNING_WINDOW_YEARS"):
            Settings(_env_file=None, warning_window_years=4.0)

    def test_year_window_must_be_ordered(self):
        with pytest.raises(ValidationError, match="VALID_YEAR_MIN"):
            Settings(_env_file=None, valid_year_min=2031)

    def test_computing_id_bounds_must_be_ordered(self):
        with pytest.raises(ValidationError, match="COMPUTING_ID_MIN_LENGTH"):
            Settings(_env_file=None, computing_id_min_length=9)

    def test_short_out_of_date_window_only_warns(self, caplog):
        settings = Settings(_env_file=None, out_of_date_days=10)
        assert settings.out_of_date_days == 10
        assert "OUT_OF_DATE_DAYS" in caplog.text


class TestEnvironment:
    def test_env_vars_override_defaults(self, monkeypatch):
        monkeypatch.setenv("INACTIVITY_DAYS", "45")
        monkeypatch.setenv("HOSTNAME_PREFIXES", '["LAB-"]')
        settings = Settings(_env_file=None)
        assert settings.inactivity_days == 45
        assert settings.hostname_prefixes == ["LAB-"]

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
