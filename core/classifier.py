"""
core/classifier.py -- Health status and replacement recommendation.

classify() evaluates tiers in a fixed precedence:

  1. inactive  -- no check-in within the inactivity window. Short-circuits the
                  age and OS rules; only the inactivity reasons are recorded.
  2. critical  -- age at or past the replacement policy, or an unsupported
                  macOS major version. Both reasons are kept when both apply.
  3. warning   -- (only when not critical) age inside the warning window, an
                  aging macOS major version, or an Intel-era Mac.
  4. good      -- positive reasons are recorded instead.

A device with neither a known age nor a check-in date is "unknown".

Replacement is a separate, narrower rule: recommended when the age sits in
[policy, upper bound] or the OS is unsupported. A device past the upper bound
is critical but not budgeted -- it is presumed deliberately retained.

All thresholds come from Settings. The reason strings are user-facing.
"""

import re
from collections.abc import Iterable
from typing import Optional

from core.config import Settings, get_settings
from core.models import (
    ACTIVITY_ACTIVE,
    ACTIVITY_INACTIVE,
    STATUS_CRITICAL,
    STATUS_GOOD,
    STATUS_INACTIVE,
    STATUS_UNKNOWN,
    STATUS_WARNING,
    Classification,
    SecurityFinding,
)

_MAJOR_RE = re.compile(r"^\s*(?:mac\s*os\s*x?\s*|os\s*x\s*)?(\d+)(?:\.\d+)*", re.IGNORECASE)
_APPLE_SILICON_RE = re.compile(r"\bM[1-4]\b")
_INTEL_ERA_YEARS = ("2017", "2018", "2019", "2020")


def os_major(os_version: Optional[str]) -> Optional[int]:
    """Major version number from strings like "14.2.1" or "macOS 13.6"."""
    if not os_version:
        return None
    match = _MAJOR_RE.match(os_version)
    return int(match.group(1)) if match else None


def _applies_macos_rules(os_type: Optional[str]) -> bool:
    # None means the caller did not say; macOS is the only platform whose
    # version strings these rules understand.
    return os_type is None or os_type == "macOS"


def has_apple_silicon(model: Optional[str]) -> bool:
    return bool(model) and bool(_APPLE_SILICON_RE.search(model))


def is_intel_era_mac(model: Optional[str]) -> bool:
    if not model or "Intel" not in model or has_apple_silicon(model):
        return False
    return any(year in model for year in _INTEL_ERA_YEARS)


def _unsupported_os(os_version: Optional[str], os_type: Optional[str], settings: Settings) -> bool:
    major = os_major(os_version)
    return _applies_macos_rules(os_type) and major is not None and major in settings.unsupported_os_majors


def _aging_os(os_version: Optional[str], os_type: Optional[str], settings: Settings) -> bool:
    major = os_major(os_version)
    return _applies_macos_rules(os_type) and major is not None and major in settings.aging_os_majors


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------


def should_replace(
    age_years: float,
    os_version: Optional[str],
    os_type: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> bool:
    settings = settings or get_settings()
    in_window = settings.replacement_policy_years <= age_years <= settings.replacement_upper_bound_years
    return in_window or _unsupported_os(os_version, os_type, settings)


def replacement_reason(
    age_years: float,
    os_version: Optional[str],
    model: Optional[str],
    os_type: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """Justification text, or None when replacement is not recommended."""
    settings = settings or get_settings()
    if not should_replace(age_years, os_version, os_type, settings):
        return None
    reasons: list[str] = []
    if settings.replacement_policy_years <= age_years <= settings.replacement_upper_bound_years:
        reasons.append(
            f"Device age is {age_years:.1f} years "
            f"(exceeds {settings.replacement_policy_years:g}-year replacement policy)"
        )
    if _unsupported_os(os_version, os_type, settings):
        reasons.append(f"Running unsupported macOS {os_major(os_version)}.x")
    if is_intel_era_mac(model):
        reasons.append("Intel-based Mac (consider Apple Silicon for replacement)")
    return "; ".join(reasons)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def classify(
    age_years: float,
    days_since_update: Optional[int],
    os_version: Optional[str],
    model: Optional[str],
    os_type: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Classification:
    """Derive status, ordered reasons, activity and replacement for one device.

    age_years of 0 means "unknown" and skips the age rules. A None
    days_since_update means no check-in was recorded; the device is not
    considered inactive on that basis alone.
    """
    settings = settings or get_settings()
    policy = settings.replacement_policy_years
    reasons: list[str] = []

    inactive = days_since_update is not None and days_since_update > settings.inactivity_days
    activity = ACTIVITY_INACTIVE if inactive else ACTIVITY_ACTIVE
    age_known = age_years > 0

    if inactive:
        status = STATUS_INACTIVE
        reasons.append(
            f"Device has not checked in for {days_since_update} days "
            f"(inactive threshold: {settings.inactivity_days} days)"
        )
        reasons.append("Device may be lost, stolen, decommissioned, or user has left organization")
    elif not age_known and days_since_update is None:
        status = STATUS_UNKNOWN
        reasons.append("Status could not be determined: no age or check-in data available")
    else:
        status = STATUS_GOOD

        if age_known and age_years >= policy:
            status = STATUS_CRITICAL
            reasons.append(f"Device is {age_years:.1f} years old (exceeds {policy:g}-year replacement policy)")
            if age_years <= settings.replacement_upper_bound_years:
                reasons.append("Eligible for immediate replacement under IT policy")
            else:
                reasons.append(
                    f"Older than {settings.replacement_upper_bound_years:g} years; "
                    "presumed retained deliberately and not budgeted for replacement"
                )

        if _unsupported_os(os_version, os_type, settings):
            status = STATUS_CRITICAL
            reasons.append(f"Running macOS {os_major(os_version)}.x which is no longer supported by Apple")

        if status != STATUS_CRITICAL:
            if age_known and age_years >= policy - settings.warning_window_years:
                status = STATUS_WARNING
                reasons.append(
                    f"Device is {age_years:.1f} years old (approaching {policy:g}-year replacement cycle)"
                )
                reasons.append("Should be budgeted for replacement in next fiscal year")

            if _aging_os(os_version, os_type, settings):
                status = STATUS_WARNING
                reasons.append(f"Running macOS {os_version} which should be upgraded to latest version")

            if is_intel_era_mac(model):
                status = STATUS_WARNING
                reasons.append("Intel-based Mac (Apple Silicon offers better performance and efficiency)")

        if status == STATUS_GOOD:
            if age_known:
                reasons.append(f"Device is {age_years:.1f} years old (within {policy:g}-year lifecycle)")
            else:
                reasons.append("Device age unknown (no purchase, warranty or model date)")
            if days_since_update is not None:
                reasons.append(f"Device checked in {days_since_update} days ago (active and current)")
            else:
                reasons.append("No check-in date recorded")
            if has_apple_silicon(model):
                reasons.append("Running Apple Silicon (modern, efficient hardware)")

    recommended = should_replace(age_years, os_version, os_type, settings)
    return Classification(
        status=status,
        activity_status=activity,
        reasons=reasons,
        replacement_recommended=recommended,
        replacement_reason=replacement_reason(age_years, os_version, model, os_type, settings),
    )


def escalate_for_findings(classification: Classification, findings: Iterable[SecurityFinding]) -> Classification:
    """Raise status for severity 5 (critical) and 4 (warning) findings.

    Used for sources that carry their own scanner data. Inactive devices are
    left alone so activity and status stay coherent.
    """
    if classification.status == STATUS_INACTIVE:
        return classification
    severities = {f.severity for f in findings}
    status = classification.status
    reasons = list(classification.reasons)
    if any(s >= 5 for s in severities):
        status = STATUS_CRITICAL
        reasons.append("Has critical (severity 5) vulnerabilities")
    elif 4 in severities:
        if status not in (STATUS_CRITICAL, STATUS_WARNING):
            status = STATUS_WARNING
        reasons.append("Has high (severity 4) vulnerabilities")
    else:
        return classification
    return Classification(
        status=status,
        activity_status=classification.activity_status,
        reasons=reasons,
        replacement_recommended=classification.replacement_recommended,
        replacement_reason=classification.replacement_reason,
    )
