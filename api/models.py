"""
API request and response models for the fleetwatch REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. The from_* factory classmethods hold
the mapping, so route handlers stay thin.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models import Device, SecurityFinding, SecurityRecord, SettingsOverlay
from core.pipeline import Report
from core.summary import Summary

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RetiredUpdate(BaseModel):
    """Body for PUT /api/v1/settings/{device_id}/retired."""

    retired: bool


class NoteUpdate(BaseModel):
    """Body for PUT /api/v1/settings/{device_id}/notes. Null or blank clears the note."""

    model_config = ConfigDict(str_strip_whitespace=True)

    note: Optional[str] = Field(default=None, max_length=2000)


class OwnerUpdate(BaseModel):
    """Body for PUT /api/v1/settings/{device_id}/owner. Null or blank clears the override."""

    model_config = ConfigDict(str_strip_whitespace=True)

    owner: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Device report
# ---------------------------------------------------------------------------


class FindingRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    qid: str
    title: str
    severity: int
    cve_id: Optional[str]
    category: Optional[str]
    first_detected: Optional[datetime]
    last_detected: Optional[datetime]
    risk_score: Optional[float]

    @classmethod
    def from_finding(cls, finding: SecurityFinding) -> "FindingRow":
        return cls(
            qid=finding.qid,
            title=finding.title,
            severity=finding.severity,
            cve_id=finding.cve_id,
            category=finding.category,
            first_detected=finding.first_detected,
            last_detected=finding.last_detected,
            risk_score=finding.risk_score,
        )


class SecurityResponse(BaseModel):
    """Scanner data attached to one device. Absent (null) when nothing matched."""

    model_config = ConfigDict(frozen=True)

    agent_id: Optional[str]
    host_id: Optional[str]
    risk_score: Optional[int]
    criticality_score: Optional[int]
    last_scan: Optional[datetime]
    ip_address: Optional[str]
    tags: list[str]
    total_count: int
    critical_high_count: int
    high_count: int
    critical_count: int
    top_cves: list[str]
    matched_by: str
    findings: list[FindingRow]

    @classmethod
    def from_record(cls, record: SecurityRecord) -> "SecurityResponse":
        return cls(
            agent_id=record.agent_id,
            host_id=record.host_id,
            risk_score=record.risk_score,
            criticality_score=record.criticality_score,
            last_scan=record.last_scan,
            ip_address=record.ip_address,
            tags=list(record.tags),
            total_count=record.total_count,
            critical_high_count=record.critical_high_count,
            high_count=record.high_count,
            critical_count=record.critical_count,
            top_cves=list(record.top_cves),
            matched_by=record.matched_by,
            findings=[FindingRow.from_finding(f) for f in record.findings],
        )


class DeviceResponse(BaseModel):
    """One reconciled device. `notes` is the display string: user notes win."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    source: str
    os_type: str
    os_version: str
    model: str
    model_identifier: Optional[str]
    manufacturer: Optional[str]
    serial_number: Optional[str]
    owner: str
    owner_email: Optional[str]
    additional_owner: Optional[str]
    department: Optional[str]
    purchase_date: Optional[datetime]
    last_seen: Optional[datetime]
    last_update: Optional[datetime]
    age_years: float
    age_basis: str
    days_since_update: Optional[int]
    is_compliant: Optional[bool]
    status: str
    activity_status: str
    status_reason: str
    status_reasons: list[str]
    replacement_recommended: bool
    replacement_reason: Optional[str]
    security: Optional[SecurityResponse]
    notes: Optional[str]
    retired: bool

    @classmethod
    def from_device(cls, device: Device) -> "DeviceResponse":
        return cls(
            id=device.id,
            name=device.name,
            source=device.source,
            os_type=device.os_type,
            os_version=device.os_version,
            model=device.model,
            model_identifier=device.model_identifier,
            manufacturer=device.manufacturer,
            serial_number=device.serial_number,
            owner=device.owner,
            owner_email=device.owner_email,
            additional_owner=device.additional_owner,
            department=device.department,
            purchase_date=device.purchase_date,
            last_seen=device.last_seen,
            last_update=device.last_update,
            age_years=device.age_years,
            age_basis=device.age_basis,
            days_since_update=device.days_since_update,
            is_compliant=device.is_compliant,
            status=device.status,
            activity_status=device.activity_status,
            status_reason=device.status_reason,
            status_reasons=list(device.status_reasons),
            replacement_recommended=device.replacement_recommended,
            replacement_reason=device.replacement_reason,
            security=SecurityResponse.from_record(device.security) if device.security else None,
            notes=device.notes,
            retired=device.retired,
        )


class SummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_devices: int
    retired_devices: int
    status_counts: dict[str, int]
    active_devices: int
    inactive_devices: int
    average_age_years: Optional[float]
    devices_with_known_age: int
    replacement_recommended: int
    estimated_replacement_cost: float
    out_of_date_devices: int
    source_counts: dict[str, int]
    devices_with_security_data: int
    vulnerable_devices: int
    total_vulnerabilities: int
    critical_high_vulnerabilities: int
    critical_vulnerabilities: int
    high_vulnerabilities: int
    average_risk_score: Optional[float]

    @classmethod
    def from_summary(cls, summary: Summary) -> "SummaryResponse":
        return cls(
            total_devices=summary.total_devices,
            retired_devices=summary.retired_devices,
            status_counts=dict(summary.status_counts),
            active_devices=summary.active_devices,
            inactive_devices=summary.inactive_devices,
            average_age_years=summary.average_age_years,
            devices_with_known_age=summary.devices_with_known_age,
            replacement_recommended=summary.replacement_recommended,
            estimated_replacement_cost=summary.estimated_replacement_cost,
            out_of_date_devices=summary.out_of_date_devices,
            source_counts=dict(summary.source_counts),
            devices_with_security_data=summary.devices_with_security_data,
            vulnerable_devices=summary.vulnerable_devices,
            total_vulnerabilities=summary.total_vulnerabilities,
            critical_high_vulnerabilities=summary.critical_high_vulnerabilities,
            critical_vulnerabilities=summary.critical_vulnerabilities,
            high_vulnerabilities=summary.high_vulnerabilities,
            average_risk_score=summary.average_risk_score,
        )


class ReportResponse(BaseModel):
    """Response for POST /api/v1/reports."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime
    sources: list[str]
    summary: SummaryResponse
    devices: list[DeviceResponse]

    @classmethod
    def from_report(cls, report: Report, sources: list[str]) -> "ReportResponse":
        return cls(
            generated_at=report.generated_at,
            sources=sources,
            summary=SummaryResponse.from_summary(report.summary),
            devices=[DeviceResponse.from_device(d) for d in report.devices],
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingsResponse(BaseModel):
    """Response for GET /api/v1/settings -- the full overlay."""

    model_config = ConfigDict(frozen=True)

    retired_ids: list[str]
    notes: dict[str, str]
    owner_overrides: dict[str, str]

    @classmethod
    def from_overlay(cls, overlay: SettingsOverlay) -> "SettingsResponse":
        return cls(
            retired_ids=sorted(overlay.retired_ids),
            notes=dict(overlay.notes),
            owner_overrides=dict(overlay.owner_overrides),
        )


class DeviceSettingsResponse(BaseModel):
    """Current overrides for one device, returned by the PUT endpoints."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    retired: bool
    note: Optional[str]
    owner: Optional[str]

    @classmethod
    def from_overlay(cls, device_id: str, overlay: SettingsOverlay) -> "DeviceSettingsResponse":
        return cls(
            device_id=device_id,
            retired=device_id in overlay.retired_ids,
            note=overlay.notes.get(device_id),
            owner=overlay.owner_overrides.get(device_id),
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
