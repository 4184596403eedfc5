"""
core/summary.py -- Fleet-level counters for the report header and the API.

Retired devices are counted and then set aside; every other figure is computed
over the active (non-retired) fleet only. Security figures are computed over
devices that carry a security record, so "no scanner match" never reads as
"zero vulnerabilities".
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from core.config import Settings, get_settings
from core.models import (
    ACTIVITY_ACTIVE,
    ACTIVITY_INACTIVE,
    STATUS_CRITICAL,
    STATUS_GOOD,
    STATUS_INACTIVE,
    STATUS_ORDER,
    STATUS_UNKNOWN,
    STATUS_WARNING,
    Device,
)


@dataclass
class Summary:
    total_devices: int = 0
    retired_devices: int = 0
    status_counts: dict[str, int] = field(default_factory=lambda: {s: 0 for s in STATUS_ORDER})
    active_devices: int = 0
    inactive_devices: int = 0
    average_age_years: Optional[float] = None  # None when no device has a known age
    devices_with_known_age: int = 0
    replacement_recommended: int = 0
    estimated_replacement_cost: float = 0.0
    out_of_date_devices: int = 0
    source_counts: dict[str, int] = field(default_factory=dict)

    devices_with_security_data: int = 0
    vulnerable_devices: int = 0
    total_vulnerabilities: int = 0
    critical_high_vulnerabilities: int = 0
    critical_vulnerabilities: int = 0
    high_vulnerabilities: int = 0
    average_risk_score: Optional[float] = None

    @property
    def critical(self) -> int:
        return self.status_counts.get(STATUS_CRITICAL, 0)

    @property
    def warning(self) -> int:
        return self.status_counts.get(STATUS_WARNING, 0)

    @property
    def good(self) -> int:
        return self.status_counts.get(STATUS_GOOD, 0)

    @property
    def unknown(self) -> int:
        return self.status_counts.get(STATUS_UNKNOWN, 0)

    @property
    def inactive(self) -> int:
        return self.status_counts.get(STATUS_INACTIVE, 0)


def summarize(devices: Iterable[Device], settings: Optional[Settings] = None) -> Summary:
    settings = settings or get_settings()
    summary = Summary()
    active: list[Device] = []
    for device in devices:
        if device.retired:
            summary.retired_devices += 1
        else:
            active.append(device)

    summary.total_devices = len(active)
    for device in active:
        summary.status_counts[device.status] = summary.status_counts.get(device.status, 0) + 1
        summary.source_counts[device.source] = summary.source_counts.get(device.source, 0) + 1
        if device.activity_status == ACTIVITY_INACTIVE:
            summary.inactive_devices += 1
        elif device.activity_status == ACTIVITY_ACTIVE:
            summary.active_devices += 1
        if device.replacement_recommended:
            summary.replacement_recommended += 1
        if device.days_since_update is not None and device.days_since_update > settings.out_of_date_days:
            summary.out_of_date_devices += 1

    # Age 0 means unknown and must not pull the mean down.
    ages = [d.age_years for d in active if d.age_years > 0]
    summary.devices_with_known_age = len(ages)
    if ages:
        summary.average_age_years = round(sum(ages) / len(ages), 1)
    summary.estimated_replacement_cost = summary.replacement_recommended * settings.replacement_unit_cost

    scanned = [d.security for d in active if d.security is not None]
    summary.devices_with_security_data = len(scanned)
    for record in scanned:
        summary.total_vulnerabilities += record.total_count
        summary.critical_high_vulnerabilities += record.critical_high_count
        summary.critical_vulnerabilities += record.critical_count
        summary.high_vulnerabilities += record.high_count
        if record.total_count > settings.vulnerable_device_threshold:
            summary.vulnerable_devices += 1
    risks = [r.risk_score for r in scanned if r.risk_score is not None]
    if risks:
        summary.average_risk_score = round(sum(risks) / len(risks), 1)
    return summary
