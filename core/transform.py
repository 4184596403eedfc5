"""
core/transform.py -- Per-source transformers: typed export records to Devices.

One public function per source:

  transform_jamf(records, directory, ...)     -> list[Device]   (macOS fleet)
  transform_intune(records, directory, ...)   -> list[Device]   (Windows fleet)
  transform_axonius(records, directory, ...)  -> list[Device]   (aggregated view)

Each transformer estimates age from the best available date signal, resolves
primary and secondary ownership, and delegates status to core/classifier.py.
Every ownership or age decision that is not obvious from the raw row is
recorded as an annotation on the device so a human can audit it.

Transformers are pure: no I/O, and the same input always yields the same
device ids in the same order.
"""

import ipaddress
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from core.classifier import classify, escalate_for_findings
from core.config import Settings, get_settings
from core.dates import days_between, parse_date, shift_years, utcnow, years_between
from core.findings import parse_float, parse_int, roll_up
from core.hardware import DEFAULT_CATALOG, ModelCatalog
from core.identity import (
    Directory,
    computing_id_from_user,
    email_local_part,
    extract_computing_ids,
    is_provisioner,
    is_unassigned,
    same_identity,
    tag_provisioner,
)
from core.models import UNASSIGNED, Device, SecurityFinding
from inventory.models import AxoniusRecord, IntuneRecord, JamfRecord

logger = logging.getLogger("fleetwatch.transform")

# A year written into a device name: "FBS-jsm2ku-2022" or "BA-LAB-2019-03".
_NAME_YEAR_RE = re.compile(r"-(20[1-3]\d)(?=-|$)")
_NAME_YEAR_RANGE = (2015, 2030)

_AXONIUS_OS_TYPES = {
    "OS X": "macOS",
    "macOS": "macOS",
    "Windows": "Windows",
    "iOS": "iOS",
    "Android": "Android",
}

# Service and kiosk logins that show up in "last used users".
SYSTEM_ACCOUNTS = frozenset(
    {
        "BattenIT",
        "BattenIT_2025",
        "Administrator",
        "admin",
        "root",
        "_mbsetupuser",
        "defaultuser0",
        "SYSTEM",
        "LOCAL SERVICE",
        "NETWORK SERVICE",
    }
)

_MAX_SOURCE_NAMES = 3


# ---------------------------------------------------------------------------
# Age estimation
# ---------------------------------------------------------------------------


@dataclass
class AgeEstimate:
    age_years: float
    purchase_date: Optional[datetime]
    basis: str  # "warranty" | "model" | "name" | "unknown"
    note: Optional[str] = None


def _age_from(purchase: datetime, now: datetime) -> float:
    if purchase > now:
        return 0.0
    # A device bought this week is new, not unknown.
    return max(0.1, round(years_between(purchase, now), 1))


def name_year(device_name: Optional[str]) -> Optional[int]:
    """Year embedded in a device name ("-2022" suffix or "-2022-" infix)."""
    if not device_name:
        return None
    match = _NAME_YEAR_RE.search(device_name)
    if not match:
        return None
    year = int(match.group(1))
    low, high = _NAME_YEAR_RANGE
    return year if low <= year <= high else None


def estimate_age(
    warranty_expiration: Optional[str],
    model_id: Optional[str],
    device_name: Optional[str],
    now: datetime,
    settings: Optional[Settings] = None,
    catalog: Optional[ModelCatalog] = None,
) -> AgeEstimate:
    """Pick one age signal: warranty > model release year > name year > unknown.

    The warranty gives purchase = expiry - warranty term. When a model year is
    also known and the two ages differ by more than the configured tolerance,
    the model year is used instead. Signals are never averaged.
    """
    settings = settings or get_settings()
    catalog = catalog or DEFAULT_CATALOG

    warranty = parse_date(warranty_expiration, settings)
    released = catalog.release_date(model_id)

    if warranty is not None:
        purchase = shift_years(warranty, -settings.warranty_term_years)
        warranty_age = _age_from(purchase, now)
        if released is not None:
            model_age = _age_from(released, now)
            if abs(model_age - warranty_age) > settings.age_signal_tolerance_years:
                note = (
                    f"Warranty suggests {warranty_age:.1f} years but model {model_id} "
                    f"was released in {released.year}; using model year"
                )
                return AgeEstimate(model_age, released, "model", note)
        return AgeEstimate(warranty_age, purchase, "warranty")

    if released is not None:
        return AgeEstimate(_age_from(released, now), released, "model")

    year = name_year(device_name)
    if year is not None:
        purchase = datetime(year, 1, 1, tzinfo=timezone.utc)
        return AgeEstimate(_age_from(purchase, now), purchase, "name")

    return AgeEstimate(0.0, None, "unknown")


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


@dataclass
class _Candidate:
    name: str
    email: str
    via: str


def _candidate_owner(
    device_name: str,
    declared_owner: str,
    declared_email: Optional[str],
    directory: Directory,
    settings: Settings,
) -> Optional[_Candidate]:
    """Second ownership signal: an id in the device name, else the declared email."""
    ids = [i for i in extract_computing_ids(device_name, settings) if i not in settings.provisioner_ids]
    hit = directory.first_match(ids)
    if hit is not None:
        cid, entry = hit
        resolved = directory.resolve(cid)
        return _Candidate(resolved.name, resolved.email, f"computing id {cid} in device name")

    local = email_local_part(declared_email)
    if not local or local in settings.provisioner_ids:
        return None
    entry = directory.lookup(local)
    if entry is None or same_identity(entry.name, declared_owner, directory):
        return None
    resolved = directory.resolve(local)
    return _Candidate(resolved.name, resolved.email, f"directory lookup of {declared_email}")


def resolve_owner(
    device: Device,
    declared_owner: str,
    declared_email: Optional[str],
    directory: Directory,
    settings: Settings,
) -> None:
    """Set owner, owner_email and additional_owner on a freshly built device.

    A provisioner with a recovered end user is swapped to a tagged secondary.
    An unassigned device with a recovered user is promoted with no secondary.
    Otherwise the declared owner stays primary and a differing candidate
    becomes the secondary.
    """
    declared_owner = declared_owner.strip() or UNASSIGNED
    candidate = _candidate_owner(device.name, declared_owner, declared_email, directory, settings)
    provisioner = is_provisioner(declared_owner, declared_email, settings)

    if provisioner and candidate is not None:
        device.owner = candidate.name
        device.owner_email = candidate.email
        device.additional_owner = tag_provisioner(declared_owner)
        device.annotate(
            "ownership",
            f"Owner {candidate.name} recovered from {candidate.via}; provisioner {declared_owner} moved to secondary",
        )
    elif is_unassigned(declared_owner) and candidate is not None:
        device.owner = candidate.name
        device.owner_email = candidate.email
        device.additional_owner = None
        device.annotate("ownership", f"Unassigned device; owner {candidate.name} recovered from {candidate.via}")
    else:
        device.owner = declared_owner
        device.owner_email = declared_email or None
        if candidate is not None and not same_identity(candidate.name, declared_owner, directory):
            device.additional_owner = candidate.name
            device.annotate(
                "ownership",
                f"Declared owner {declared_owner} differs from {candidate.name} ({candidate.via})",
            )
        if provisioner and candidate is None:
            device.annotate("ownership", f"Declared owner {declared_owner} is an IT provisioner; no end user found")

    if same_identity(device.owner, device.additional_owner, directory):
        device.additional_owner = None


# ---------------------------------------------------------------------------
# Jamf
# ---------------------------------------------------------------------------


def _jamf_id(raw: JamfRecord, index: int) -> str:
    if raw.serial_number:
        return f"jamf-{raw.serial_number}"
    if raw.computer_name:
        return f"jamf-{raw.computer_name}"
    return f"jamf-row-{index}"


def _jamf_device(
    raw: JamfRecord,
    index: int,
    directory: Directory,
    settings: Settings,
    now: datetime,
    catalog: ModelCatalog,
) -> Device:
    name = raw.computer_name or f"Unknown-{index}"
    last_check_in = parse_date(raw.last_check_in, settings)
    last_update = parse_date(raw.last_inventory_update, settings) or last_check_in
    age = estimate_age(raw.warranty_expiration, raw.model, name, now, settings, catalog)

    manufacturer = raw.make
    if not manufacturer and raw.model:
        manufacturer = catalog.manufacturer(raw.model)
    if not manufacturer or manufacturer == "Unknown":
        manufacturer = "Apple"

    device = Device(
        id=_jamf_id(raw, index),
        name=name,
        source="jamf",
        os_type="macOS",
        os_version=raw.os_version or "Unknown",
        model=catalog.friendly_name(raw.model),
        model_identifier=raw.model or None,
        manufacturer=manufacturer,
        serial_number=raw.serial_number or None,
        mac_address=raw.mac_address or None,
        processor=raw.processor_type or None,
        department=raw.department or None,
        purchase_date=age.purchase_date,
        last_seen=last_check_in,
        last_update=last_update,
        age_years=age.age_years,
        age_basis=age.basis,
        days_since_update=days_between(last_update, now) if last_update else None,
        is_compliant=raw.managed == "Managed" and raw.supervised == "Yes",
    )
    if age.note:
        device.annotate("age", age.note)

    email = raw.email_address or raw.username
    resolve_owner(device, raw.full_name or email or UNASSIGNED, email or None, directory, settings)
    device.apply(
        classify(device.age_years, device.days_since_update, device.os_version, device.model, "macOS", settings)
    )
    return device


def transform_jamf(
    records: Iterable[JamfRecord],
    directory: Optional[Directory] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    catalog: Optional[ModelCatalog] = None,
) -> list[Device]:
    """Jamf computers to Devices. Rows sharing an id collapse to the last one."""
    settings = settings or get_settings()
    directory = directory if directory is not None else Directory(settings=settings)
    now = now or utcnow()
    catalog = catalog or DEFAULT_CATALOG

    devices: dict[str, Device] = {}
    count = 0
    for index, raw in enumerate(records):
        count += 1
        device = _jamf_device(raw, index, directory, settings, now, catalog)
        if device.id in devices:
            logger.debug("Duplicate Jamf id %s; later row wins", device.id)
        devices[device.id] = device

    logger.info("Jamf: %d rows -> %d devices", count, len(devices))
    return list(devices.values())


# ---------------------------------------------------------------------------
# Intune
# ---------------------------------------------------------------------------


def _prefer_intune(new: IntuneRecord, existing: IntuneRecord, settings: Settings) -> bool:
    """True if `new` should replace `existing` for the same device name."""
    if bool(new.upn) != bool(existing.upn):
        return bool(new.upn)
    new_ts = parse_date(new.last_modified, settings)
    old_ts = parse_date(existing.last_modified, settings)
    if new_ts is None:
        return old_ts is None
    if old_ts is None:
        return True
    return new_ts >= old_ts


def dedupe_intune(records: Iterable[IntuneRecord], settings: Optional[Settings] = None) -> list[IntuneRecord]:
    """One record per upper-cased device name, in first-seen order."""
    settings = settings or get_settings()
    chosen: dict[str, IntuneRecord] = {}
    for raw in records:
        key = raw.device_name.strip().upper()
        if not key:
            continue
        existing = chosen.get(key)
        if existing is None or _prefer_intune(raw, existing, settings):
            chosen[key] = raw
    return list(chosen.values())


def _intune_device(
    raw: IntuneRecord,
    directory: Directory,
    settings: Settings,
    now: datetime,
    catalog: ModelCatalog,
) -> Device:
    name = raw.device_name.strip()
    last_modified = parse_date(raw.last_modified, settings)
    age = estimate_age(None, None, name, now, settings, catalog)

    declared = UNASSIGNED
    if raw.upn:
        uid = email_local_part(raw.upn)
        entry = directory.lookup(uid)
        declared = entry.name if entry is not None and entry.name else uid

    device = Device(
        id=f"intune-{name.upper()}",
        name=name,
        source="intune",
        os_type="Windows",
        purchase_date=age.purchase_date,
        last_seen=last_modified,
        last_update=last_modified,
        age_years=age.age_years,
        age_basis=age.basis,
        days_since_update=days_between(last_modified, now) if last_modified else None,
        is_compliant=raw.report_status == "Succeeded",
    )
    resolve_owner(device, declared, raw.upn or None, directory, settings)
    device.apply(
        classify(device.age_years, device.days_since_update, device.os_version, device.model, "Windows", settings)
    )
    return device


def transform_intune(
    records: Iterable[IntuneRecord],
    directory: Optional[Directory] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    catalog: Optional[ModelCatalog] = None,
) -> list[Device]:
    settings = settings or get_settings()
    directory = directory if directory is not None else Directory(settings=settings)
    now = now or utcnow()
    catalog = catalog or DEFAULT_CATALOG

    rows = list(records)
    unique = dedupe_intune(rows, settings)
    devices = [_intune_device(raw, directory, settings, now, catalog) for raw in unique]
    logger.info("Intune: %d rows -> %d devices", len(rows), len(devices))
    return devices


# ---------------------------------------------------------------------------
# Axonius
# ---------------------------------------------------------------------------


def _lines(value: Optional[str]) -> list[str]:
    return [line.strip() for line in (value or "").splitlines() if line.strip()]


def _first_line(value: Optional[str]) -> str:
    lines = _lines(value)
    return lines[0] if lines else ""


def _first_ipv4(value: Optional[str]) -> Optional[str]:
    for line in _lines(value):
        try:
            address = ipaddress.ip_address(line)
        except ValueError:
            continue
        if address.version == 4 and not address.is_loopback:
            return line
    return None


def _inventory_findings(raw: AxoniusRecord, settings: Settings) -> list[SecurityFinding]:
    """EPSS columns are parallel newline-separated lists; index i is one finding."""
    cves = _lines(raw.epss_cve_ids)[: settings.max_inventory_findings]
    severities = _lines(raw.epss_severities)
    scores = _lines(raw.epss_scores)
    findings = []
    for i, cve in enumerate(cves):
        severity = parse_int(severities[i]) if i < len(severities) else None
        findings.append(
            SecurityFinding(
                qid="",
                title=cve,
                severity=severity or 0,
                cve_id=cve,
                risk_score=parse_float(scores[i]) if i < len(scores) else None,
            )
        )
    return findings


def _axonius_owner(device: Device, raw: AxoniusRecord, directory: Directory, settings: Settings) -> None:
    eservices = f".eservices.{settings.email_domain}".lower()
    users: list[tuple[str, bool]] = []
    for user in _lines(raw.last_used_users):
        if user in SYSTEM_ACCOUNTS or user.endswith("..") or eservices in user.lower():
            continue
        cid = computing_id_from_user(user, settings)
        if cid is None:
            continue
        provisioner = cid in settings.provisioner_ids or is_provisioner(user, None, settings)
        users.append((cid, provisioner))

    primary = next((cid for cid, prov in users if not prov), None)
    staff = next((cid for cid, prov in users if prov), None)

    if primary is not None:
        resolved = directory.resolve(primary)
        device.owner, device.owner_email = resolved.name, resolved.email
        if staff is not None:
            device.additional_owner = tag_provisioner(directory.resolve(staff).name)
    elif staff is not None:
        resolved = directory.resolve(staff)
        device.owner, device.owner_email = resolved.name, resolved.email
        device.annotate("ownership", "Only an IT provisioner has used this device")
    else:
        ids = [i for i in extract_computing_ids(device.name, settings) if i not in settings.provisioner_ids]
        if ids:
            resolved = directory.resolve(ids[0])
            device.owner, device.owner_email = resolved.name, resolved.email
            device.annotate("ownership", f"Owner inferred from computing id {ids[0]} in device name")

    if same_identity(device.owner, device.additional_owner, directory):
        device.additional_owner = None


def _axonius_device(
    raw: AxoniusRecord,
    hostname: str,
    directory: Directory,
    settings: Settings,
    now: datetime,
    catalog: ModelCatalog,
) -> Device:
    last_seen = parse_date(_first_line(raw.last_seen), settings)
    raw_model = _first_line(raw.device_model) or "Unknown"
    age = estimate_age(None, raw_model, hostname, now, settings, catalog)
    department = next((d for d in _lines(raw.last_used_users_description) if d != "None"), None)

    device = Device(
        id=f"axonius-{hostname}",
        name=hostname,
        source="axonius",
        os_type=_AXONIUS_OS_TYPES.get(_first_line(raw.os_type), "Unknown"),
        model=catalog.friendly_name(raw_model),
        model_identifier=raw_model if raw_model != "Unknown" else None,
        manufacturer=catalog.manufacturer(raw_model),
        serial_number=_first_line(raw.bios_serial) or _first_line(raw.manufacturer_serial) or None,
        mac_address=_first_line(raw.mac_addresses) or None,
        department=department,
        purchase_date=age.purchase_date,
        last_seen=last_seen,
        last_update=last_seen,
        age_years=age.age_years,
        age_basis=age.basis,
        days_since_update=days_between(last_seen, now) if last_seen else None,
    )
    _axonius_owner(device, raw, directory, settings)

    classification = classify(
        device.age_years, device.days_since_update, device.os_version, device.model, device.os_type, settings
    )
    findings = _inventory_findings(raw, settings)
    if findings:
        device.security = roll_up(
            findings, settings, ip_address=_first_ipv4(raw.ip_addresses), matched_by="inventory"
        )
        classification = escalate_for_findings(classification, findings)
    device.apply(classification)

    adapters = _lines(raw.adapter_connections)
    if adapters:
        shown = ", ".join(adapters[:_MAX_SOURCE_NAMES])
        extra = len(adapters) - _MAX_SOURCE_NAMES
        device.annotate("sources", f"Data sources: {shown}" + (f" (+{extra} more)" if extra > 0 else ""))
    return device


def transform_axonius(
    records: Iterable[AxoniusRecord],
    directory: Optional[Directory] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    catalog: Optional[ModelCatalog] = None,
) -> list[Device]:
    """Aggregated inventory rows to Devices, limited to the configured hostname prefixes."""
    settings = settings or get_settings()
    directory = directory if directory is not None else Directory(settings=settings)
    now = now or utcnow()
    catalog = catalog or DEFAULT_CATALOG
    prefixes = tuple(p.upper() for p in settings.hostname_prefixes)

    devices: dict[str, Device] = {}
    count = skipped = 0
    for raw in records:
        count += 1
        hostname = _first_line(raw.host_name) or _first_line(raw.asset_name)
        if not hostname or not hostname.upper().startswith(prefixes):
            skipped += 1
            continue
        device = _axonius_device(raw, hostname, directory, settings, now, catalog)
        devices[device.id] = device

    logger.info("Axonius: %d rows -> %d devices (%d outside hostname prefixes)", count, len(devices), skipped)
    return list(devices.values())
