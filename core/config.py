"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for fleetwatch happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. inactivity_days -> INACTIVITY_DAYS). List fields are read as JSON
      (e.g. PROVISIONER_IDS='["ab1cd", "xy9z"]').

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Inconsistent policy thresholds are a hard startup failure.

Every organisation-specific policy constant (replacement policy, inactivity
windows, unit cost, provisioner identities, hostname prefixes) lives here so
the pipeline treats them as configuration rather than hard-coded law. The
core functions accept an optional Settings argument and fall back to
get_settings(), so tests can pass a tailored instance without touching the
environment.

Layer rule: core/ is the kernel. This module may not import from api/ or
inventory/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("fleetwatch.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string means "use the SQLite file next to inventory/store.py".
    database_url: str = ""
    max_upload_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Lifecycle policy
    # ------------------------------------------------------------------

    replacement_policy_years: float = 3.0
    # Devices older than this are treated as deliberately retained and are not
    # budgeted for replacement even though they classify as critical.
    replacement_upper_bound_years: float = 5.0
    # "Approaching replacement" window below the policy threshold.
    warning_window_years: float = 1.0
    # Warranty expiry minus this many years estimates the purchase date.
    warranty_term_years: int = 3
    # Warranty-derived age and model release year must agree within this
    # tolerance, otherwise the model year wins.
    age_signal_tolerance_years: float = 1.5
    replacement_unit_cost: float = 1500.0

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    inactivity_days: int = 30
    out_of_date_days: int = 90

    # ------------------------------------------------------------------
    # Date sanity window -- dates outside are treated as corrupt exports
    # ------------------------------------------------------------------

    valid_year_min: int = 2000
    valid_year_max: int = 2030

    # ------------------------------------------------------------------
    # Operating system policy (macOS major versions)
    # ------------------------------------------------------------------

    unsupported_os_majors: list[int] = [10]
    aging_os_majors: list[int] = [11, 12]

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    provisioner_ids: list[str] = ["bh4hb", "jww8je"]
    provisioner_names: list[str] = [
        "Jeffrey Wayne Whelchel",
        "Whelchel, Jeffrey Wayne",
        "Ben Hartless",
        "Hartless, Ben",
    ]
    email_domain: str = "virginia.edu"
    computing_id_min_length: int = 4
    computing_id_max_length: int = 8
    hostname_prefixes: list[str] = ["BA-", "FBS-"]

    # ------------------------------------------------------------------
    # Security enrichment
    # ------------------------------------------------------------------

    top_cve_limit: int = 5
    # Partial hostname containment is ignored below this length so short
    # names like "ba" cannot swallow every asset.
    partial_match_min_length: int = 4
    vulnerable_device_threshold: int = 5
    max_inventory_findings: int = 20

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_policy(self) -> "Settings":
        """Reject threshold combinations the classifier cannot honour.

        The replacement window must be non-empty, the warning window must sit
        below the policy threshold, and the year and computing id ranges must
        be ordered. An out-of-date window shorter than the inactivity window
        is allowed but logged.
        """
        if self.replacement_upper_bound_years < self.replacement_policy_years:
            raise ValueError("REPLACEMENT_UPPER_BOUND_YEARS must be >= REPLACEMENT_POLICY_YEARS.")
        if not 0 <= self.warning_window_years <= self.replacement_policy_years:
            raise ValueError("WARNING_WINDOW_YEARS must be between 0 and REPLACEMENT_POLICY_YEARS.")
        if self.valid_year_min > self.valid_year_max:
            raise ValueError("VALID_YEAR_MIN must be <= VALID_YEAR_MAX.")
        if self.computing_id_min_length > self.computing_id_max_length:
            raise ValueError("COMPUTING_ID_MIN_LENGTH must be <= COMPUTING_ID_MAX_LENGTH.")
        if self.out_of_date_days < self.inactivity_days:
            logger.warning(
                "OUT_OF_DATE_DAYS (%d) is shorter than INACTIVITY_DAYS (%d); "
                "every inactive device will also count as out of date.",
                self.out_of_date_days,
                self.inactivity_days,
            )
        self.provisioner_ids = [p.strip().lower() for p in self.provisioner_ids if p.strip()]
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, except tests that need a tailored policy.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
