from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

STATUS_CRITICAL = "critical"
STATUS_WARNING = "warning"
STATUS_GOOD = "good"
STATUS_UNKNOWN = "unknown"
STATUS_INACTIVE = "inactive"

# Display order used by the merger: most urgent first, inactive last.
STATUS_ORDER: dict[str, int] = {
    STATUS_CRITICAL: 0,
    STATUS_WARNING: 1,
    STATUS_GOOD: 2,
    STATUS_UNKNOWN: 3,
    STATUS_INACTIVE: 4,
}

ACTIVITY_ACTIVE = "active"
ACTIVITY_INACTIVE = "inactive"

UNASSIGNED = "Unassigned"


@dataclass(frozen=True)
class DirectoryEntry:
    """One roster row: computing id -> display name / email."""

    computing_id: str  # lowercase
    email: str = ""
    name: str = ""
    restricted: bool = False


@dataclass(frozen=True)
class SecurityFinding:
    qid: str
    title: str
    severity: int  # 1-5, 0 when the export left it blank
    cve_id: Optional[str] = None
    category: Optional[str] = None
    first_detected: Optional[datetime] = None
    last_detected: Optional[datetime] = None
    solution: Optional[str] = None
    threat: Optional[str] = None
    impact: Optional[str] = None
    risk_score: Optional[float] = None


@dataclass
class SecurityRecord:
    agent_id: Optional[str] = None
    host_id: Optional[str] = None
    risk_score: Optional[int] = None
    criticality_score: Optional[int] = None
    last_scan: Optional[datetime] = None
    ip_address: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    findings: list[SecurityFinding] = field(default_factory=list)
    total_count: int = 0
    critical_high_count: int = 0  # severity 4 or 5
    high_count: int = 0  # severity 4
    critical_count: int = 0  # severity 5
    top_cves: list[str] = field(default_factory=list)
    matched_by: str = ""  # "name" | "computing_id" | "partial" | "serial" | "mac" | "inventory"


@dataclass(frozen=True)
class Annotation:
    source: str  # "age" | "ownership" | "directory" | "security" | "sources"
    text: str


@dataclass
class Classification:
    status: str
    activity_status: str
    reasons: list[str] = field(default_factory=list)
    replacement_recommended: bool = False
    replacement_reason: Optional[str] = None

    @property
    def status_reason(self) -> str:
        return "; ".join(self.reasons)


@dataclass
class Device:
    id: str
    name: str
    source: str  # "jamf" | "intune" | "axonius"
    os_type: str = "Unknown"  # "macOS" | "Windows" | "iOS" | "Android" | "Unknown"
    os_version: str = "Unknown"
    model: str = "Unknown Model"
    model_identifier: Optional[str] = None
    manufacturer: Optional[str] = None
    serial_number: Optional[str] = None
    mac_address: Optional[str] = None
    processor: Optional[str] = None

    owner: str = UNASSIGNED
    owner_email: Optional[str] = None
    additional_owner: Optional[str] = None
    department: Optional[str] = None

    purchase_date: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    last_update: Optional[datetime] = None
    age_years: float = 0.0  # 0.0 = unknown
    age_basis: str = "unknown"  # "warranty" | "model" | "name" | "unknown"
    days_since_update: Optional[int] = None
    is_compliant: Optional[bool] = None

    status: str = STATUS_UNKNOWN
    activity_status: str = ACTIVITY_ACTIVE
    status_reasons: list[str] = field(default_factory=list)
    replacement_recommended: bool = False
    replacement_reason: Optional[str] = None

    security: Optional[SecurityRecord] = None
    annotations: list[Annotation] = field(default_factory=list)

    retired: bool = False
    user_notes: Optional[str] = None
    owner_override: Optional[str] = None

    @property
    def status_reason(self) -> str:
        return "; ".join(self.status_reasons)

    @property
    def notes(self) -> Optional[str]:
        """Display notes: user-edited notes win over pipeline annotations."""
        if self.user_notes:
            return self.user_notes
        if not self.annotations:
            return None
        return "; ".join(a.text for a in self.annotations)

    def annotate(self, source: str, text: str) -> None:
        """Append an annotation unless an identical one is already present.

        Re-running an enrichment stage over the same device therefore never
        duplicates its note.
        """
        note = Annotation(source=source, text=text)
        if note not in self.annotations:
            self.annotations.append(note)

    def apply(self, classification: Classification) -> None:
        self.status = classification.status
        self.activity_status = classification.activity_status
        self.status_reasons = list(classification.reasons)
        self.replacement_recommended = classification.replacement_recommended
        self.replacement_reason = classification.replacement_reason


@dataclass(frozen=True)
class SettingsOverlay:
    """User-maintained overrides, applied after classification and enrichment."""

    retired_ids: frozenset[str] = frozenset()
    notes: dict[str, str] = field(default_factory=dict)
    owner_overrides: dict[str, str] = field(default_factory=dict)
