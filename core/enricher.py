"""
core/enricher.py -- Second-pass enrichment of transformed devices.

  enrich_security()   attaches at most one scanner asset per device, found by
                      a waterfall of matching strategies, plus that asset's
                      findings and roll-up counts.
  enrich_ownership()  reconciles the resolved owner against the directory's
                      device -> user export, a higher-confidence signal than
                      names embedded in hostnames.

Both return new Device objects; the input list is not modified. Enrichment is
additive: a device with no match comes back exactly as it went in.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import replace
from typing import Callable, Optional

from core.config import Settings, get_settings
from core.dates import parse_date
from core.findings import parse_float, parse_int, roll_up
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
from core.models import Device, SecurityFinding
from inventory.models import DeviceUserRecord, ScannerAsset, ScannerFindingRow

logger = logging.getLogger("fleetwatch.enricher")

_NON_HEX_RE = re.compile(r"[^0-9a-f]")
_QUIET_COMPLIANCE_STATES = {"compliant", "unknown", ""}


def _copy(device: Device) -> Device:
    return replace(device, annotations=list(device.annotations), status_reasons=list(device.status_reasons))


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


def findings_by_host(
    rows: Iterable[ScannerFindingRow], settings: Optional[Settings] = None
) -> dict[str, list[SecurityFinding]]:
    """Group detection rows by scanner host id. Rows without a host id are dropped."""
    settings = settings or get_settings()
    grouped: dict[str, list[SecurityFinding]] = {}
    for row in rows:
        if not row.host_id:
            continue
        grouped.setdefault(row.host_id, []).append(
            SecurityFinding(
                qid=row.qid,
                title=row.title,
                severity=parse_int(row.severity) or 0,
                cve_id=row.cve_id or None,
                category=row.category or None,
                first_detected=parse_date(row.first_detected, settings),
                last_detected=parse_date(row.last_detected, settings),
                solution=row.solution or None,
                threat=row.threat or None,
                impact=row.impact or None,
                risk_score=parse_float(row.risk_score),
            )
        )
    return grouped


def normalize_mac(value: Optional[str]) -> Optional[str]:
    """Lowercase hex digits only, so colon, dash and dotted forms compare equal."""
    if not value:
        return None
    digits = _NON_HEX_RE.sub("", value.lower())
    return digits if len(digits) == 12 else None


def _asset_names(asset: ScannerAsset) -> list[str]:
    return [n.strip().lower() for n in (asset.asset_name, asset.netbios_name) if n and n.strip()]


def _device_ids(device: Device, settings: Settings) -> list[str]:
    """Computing ids tied to a device: from its name, owner email and owner."""
    ids = list(extract_computing_ids(device.name, settings))
    for candidate in (email_local_part(device.owner_email), computing_id_from_user(device.owner, settings)):
        if candidate and candidate not in ids:
            ids.append(candidate)
    return ids


class _AssetIndex:
    """Lookup tables over the scanner asset list, one per matching strategy."""

    def __init__(self, assets: list[ScannerAsset], settings: Settings) -> None:
        self.assets = assets
        self.settings = settings
        self.by_name: dict[str, ScannerAsset] = {}
        self.by_user: dict[str, ScannerAsset] = {}
        self.by_serial: dict[str, ScannerAsset] = {}
        self.by_mac: dict[str, ScannerAsset] = {}
        for asset in assets:
            for name in _asset_names(asset):
                self.by_name.setdefault(name, asset)
            cid = computing_id_from_user(asset.last_logged_on_user, settings)
            if cid:
                self.by_user.setdefault(cid, asset)
            if asset.bios_serial:
                self.by_serial.setdefault(asset.bios_serial.strip().upper(), asset)
            mac = normalize_mac(asset.mac_address)
            if mac:
                self.by_mac.setdefault(mac, asset)

    def by_exact_name(self, device: Device) -> Optional[ScannerAsset]:
        return self.by_name.get(device.name.strip().lower())

    def by_computing_id(self, device: Device) -> Optional[ScannerAsset]:
        for cid in _device_ids(device, self.settings):
            if cid in self.by_user:
                return self.by_user[cid]
        return None

    def by_partial_name(self, device: Device) -> Optional[ScannerAsset]:
        minimum = self.settings.partial_match_min_length
        name = device.name.strip().lower()
        if len(name) < minimum:
            return None
        for asset in self.assets:
            for other in _asset_names(asset):
                if len(other) >= minimum and (other in name or name in other):
                    return asset
        return None

    def by_serial_number(self, device: Device) -> Optional[ScannerAsset]:
        if not device.serial_number:
            return None
        return self.by_serial.get(device.serial_number.strip().upper())

    def by_mac_address(self, device: Device) -> Optional[ScannerAsset]:
        mac = normalize_mac(device.mac_address)
        return self.by_mac.get(mac) if mac else None

    def match(self, device: Device) -> Optional[tuple[str, ScannerAsset]]:
        """First hit of the waterfall as (strategy, asset), or None."""
        strategies: list[tuple[str, Callable[[Device], Optional[ScannerAsset]]]] = [
            ("name", self.by_exact_name),
            ("computing_id", self.by_computing_id),
            ("partial", self.by_partial_name),
            ("serial", self.by_serial_number),
            ("mac", self.by_mac_address),
        ]
        for strategy, find in strategies:
            asset = find(device)
            if asset is not None:
                return strategy, asset
        return None


def _owns(device: Device, cid: str, directory: Optional[Directory], settings: Settings) -> bool:
    if cid in _device_ids(device, settings):
        return True
    return any(same_identity(cid, owner, directory) for owner in (device.owner, device.additional_owner) if owner)


def enrich_security(
    devices: Iterable[Device],
    assets: Iterable[ScannerAsset],
    findings: Iterable[ScannerFindingRow],
    settings: Optional[Settings] = None,
    directory: Optional[Directory] = None,
) -> list[Device]:
    """Attach scanner data by name, computing id, partial name, serial, then MAC."""
    settings = settings or get_settings()
    index = _AssetIndex(list(assets), settings)
    grouped = findings_by_host(findings, settings)

    enriched: list[Device] = []
    matched = 0
    for device in devices:
        hit = index.match(device)
        if hit is None:
            logger.debug("No scanner asset for %s", device.name)
            enriched.append(device)
            continue

        strategy, asset = hit
        matched += 1
        logger.debug("Scanner asset %s matched %s by %s", asset.asset_name or asset.host_id, device.name, strategy)
        device = _copy(device)
        device.security = roll_up(
            grouped.get(asset.host_id, []),
            settings,
            agent_id=asset.agent_id or None,
            host_id=asset.host_id or None,
            risk_score=parse_int(asset.risk_score),
            criticality_score=parse_int(asset.criticality_score),
            last_scan=parse_date(asset.last_vuln_scan, settings),
            ip_address=asset.ipv4_address or None,
            tags=[t.strip() for t in asset.tags.split(",") if t.strip()],
            matched_by=strategy,
        )
        cid = computing_id_from_user(asset.last_logged_on_user, settings)
        if cid and not _owns(device, cid, directory, settings):
            device.annotate("security", f"Scanner last logged on user: {asset.last_logged_on_user}")
        enriched.append(device)

    logger.info("Security: %d of %d devices matched a scanner asset", matched, len(enriched))
    return enriched


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


def build_device_user_map(records: Iterable[DeviceUserRecord]) -> dict[str, DeviceUserRecord]:
    """Upper-cased device name -> record. A later row wins unless it lost the UPN."""
    mapping: dict[str, DeviceUserRecord] = {}
    for record in records:
        key = record.display_name.strip().upper()
        if not key:
            continue
        existing = mapping.get(key)
        if existing is not None and existing.user_principal_name and not record.user_principal_name:
            continue
        mapping[key] = record
    return mapping


def _mapped_user_id(device: Device, record: DeviceUserRecord, settings: Settings) -> Optional[str]:
    if record.user_principal_name:
        return email_local_part(record.user_principal_name)
    ids = [i for i in extract_computing_ids(device.name, settings) if i not in settings.provisioner_ids]
    return ids[0] if ids else None


def _reconcile(device: Device, uid: str, directory: Directory, settings: Settings) -> None:
    mapped = directory.resolve(uid)
    mapped_is_staff = uid in settings.provisioner_ids or is_provisioner(mapped.name, mapped.email, settings)
    current_is_staff = is_provisioner(device.owner, device.owner_email, settings)

    if mapped_is_staff:
        if not device.additional_owner and not same_identity(mapped.name, device.owner, directory):
            device.additional_owner = tag_provisioner(mapped.name)
        return

    if current_is_staff or is_unassigned(device.owner):
        previous = device.owner
        device.owner = mapped.name
        device.owner_email = mapped.email
        if current_is_staff:
            device.additional_owner = tag_provisioner(previous)
            device.annotate(
                "directory", f"Owner {mapped.name} from device directory; provisioner {previous} moved to secondary"
            )
        else:
            device.annotate("directory", f"Owner {mapped.name} from device directory (was {previous})")
        return

    if not same_identity(device.owner, mapped.name, directory) and not device.additional_owner:
        device.additional_owner = mapped.name
        device.annotate("directory", f"Device directory lists {mapped.name}; kept {device.owner} as primary")


def enrich_ownership(
    devices: Iterable[Device],
    device_user_map: dict[str, DeviceUserRecord],
    directory: Optional[Directory] = None,
    settings: Optional[Settings] = None,
) -> list[Device]:
    """Reconcile owners against the device -> user export.

    A provisioner or unassigned primary is replaced by the mapped user. A
    real primary that disagrees is kept, and the mapped user becomes the
    secondary if that slot is free. A previously resolved non-provisioner
    primary is never dropped.
    """
    settings = settings or get_settings()
    directory = directory if directory is not None else Directory(settings=settings)

    enriched: list[Device] = []
    touched = 0
    for device in devices:
        record = device_user_map.get(device.name.strip().upper())
        if record is None:
            enriched.append(device)
            continue

        touched += 1
        device = _copy(device)
        uid = _mapped_user_id(device, record, settings)
        if uid:
            _reconcile(device, uid, directory, settings)
        if not device.department and record.department:
            device.department = record.department
        state = record.compliance_state.strip()
        if state.lower() not in _QUIET_COMPLIANCE_STATES:
            device.annotate("directory", f"Entra compliance: {state}")
        if same_identity(device.owner, device.additional_owner, directory):
            device.additional_owner = None
        enriched.append(device)

    logger.info("Ownership: %d of %d devices found in the device directory", touched, len(enriched))
    return enriched
