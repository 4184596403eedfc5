"""
inventory/ingest.py -- Export parsers: raw CSV text to typed per-source records.

read_rows() is the only function that deals in untyped rows. Every parse_*()
function maps one export's header names onto a dataclass from
inventory/models.py. No external dependencies beyond stdlib.

Supported exports:
  - Jamf Pro computer inventory        parse_jamf()
  - Intune device configuration report parse_intune()
  - Axonius aggregated devices         parse_axonius()   (multi-line cells)
  - Directory roster                   parse_directory()
  - Qualys asset inventory             parse_scanner_assets()
  - Qualys vulnerability detections    parse_scanner_findings()
  - Entra device export                parse_device_users()

Tolerances (shared by all formats): leading byte-order mark, CRLF or LF line
endings, quoted fields with embedded commas, doubled-quote escapes and
embedded newlines, surrounding whitespace. Rows that are entirely empty are
skipped; rows with too few columns get "" for the missing ones. Parsers never
raise for data problems -- a structurally broken file yields the rows read
before the fault.
"""

import csv
import io
import logging
from collections.abc import Callable
from typing import TypeVar

from core.models import DirectoryEntry
from inventory.models import (
    AxoniusRecord,
    DeviceUserRecord,
    IntuneRecord,
    JamfRecord,
    ScannerAsset,
    ScannerFindingRow,
)

logger = logging.getLogger("fleetwatch.ingest")

_BOM = "\ufeff"
_FIELD_SIZE_LIMIT = 16 * 1024 * 1024

# Process-wide on import: the csv module has no per-reader field limit.
# Only ever raised, never lowered.
csv.field_size_limit(max(csv.field_size_limit(), _FIELD_SIZE_LIMIT))

R = TypeVar("R")


# ---------------------------------------------------------------------------
# Untyped rows
# ---------------------------------------------------------------------------


def read_rows(content: str) -> list[dict[str, str]]:
    """Parse delimited text into header-keyed rows, in input order.

    The csv module tracks quote state across physical lines, so a quoted
    field containing a newline stays one field of one row.
    """
    if not content:
        return []
    if content.startswith(_BOM):
        content = content[1:]

    reader = csv.reader(io.StringIO(content, newline=""), skipinitialspace=True)
    headers: list[str] = []
    rows: list[dict[str, str]] = []
    try:
        for raw in reader:
            values = [v.strip() for v in raw]
            if not any(values):
                continue
            if not headers:
                headers = [h.lstrip(_BOM) for h in values]
                continue
            rows.append({h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)})
    except csv.Error as exc:
        logger.warning("CSV parse stopped at line %d: %s", reader.line_num, exc)
    return rows


def _typed(rows: list[dict[str, str]], cls: Callable[..., R], columns: dict[str, tuple[str, ...]]) -> list[R]:
    """Build one record per row. Each field takes the first non-empty header alias."""
    records: list[R] = []
    for row in rows:
        kwargs = {}
        for field_name, headers in columns.items():
            kwargs[field_name] = next((row[h] for h in headers if row.get(h)), "")
        records.append(cls(**kwargs))
    return records


# ---------------------------------------------------------------------------
# Column maps -- dataclass field -> accepted export header(s)
# ---------------------------------------------------------------------------

JAMF_COLUMNS: dict[str, tuple[str, ...]] = {
    "computer_name": ("Computer Name",),
    "processor_type": ("Processor Type",),
    "warranty_expiration": ("Warranty Expiration",),
    "supervised": ("Supervised",),
    "serial_number": ("Serial Number",),
    "last_check_in": ("Last Check-in",),
    "full_name": ("Full Name",),
    "department": ("Department",),
    "last_inventory_update": ("Last Inventory Update",),
    "mac_address": ("MAC Address",),
    "model": ("Model",),
    "username": ("Username",),
    "os_version": ("Operating System Version",),
    "managed": ("Managed",),
    "email_address": ("Email Address",),
    "make": ("Make",),
}

INTUNE_COLUMNS: dict[str, tuple[str, ...]] = {
    "device_name": ("DeviceName",),
    "upn": ("UPN",),
    "report_status": ("ReportStatus",),
    "last_modified": ("PspdpuLastModifiedTimeUtc",),
}

AXONIUS_COLUMNS: dict[str, tuple[str, ...]] = {
    "adapter_connections": ("Aggregated: Adapter Connections",),
    "asset_name": ("Aggregated: Asset Name",),
    "host_name": ("Aggregated: Host Name",),
    "last_used_users": ("Aggregated: Last Used Users",),
    "last_used_users_description": ("Aggregated: Last Used Users Description",),
    "last_seen": ("Aggregated: Last Seen",),
    "mac_addresses": ("Aggregated: Network Interfaces: MAC",),
    "ip_addresses": ("Aggregated: Network Interfaces: IPs",),
    "os_type": ("Aggregated: OS: Type",),
    "device_model": ("Aggregated: Device Model",),
    "epss_cve_ids": ("Aggregated: Qualys Vulnerabilities: EPSS Data: CVE ID",),
    "epss_scores": ("Aggregated: Qualys Vulnerabilities: EPSS Data: Score",),
    "epss_severities": ("Aggregated: Qualys Vulnerabilities: EPSS Data: Severity",),
    "bios_serial": ("Aggregated: Bios Serial",),
    "manufacturer_serial": ("Aggregated: Device Manufacturer Serial",),
}

SCANNER_ASSET_COLUMNS: dict[str, tuple[str, ...]] = {
    "agent_id": ("Agent ID",),
    "host_id": ("Host ID",),
    "asset_name": ("Asset Name",),
    "netbios_name": ("NetBIOS Name",),
    "mac_address": ("MAC Address",),
    "ipv4_address": ("IPV4 Address",),
    "bios_serial": ("BIOS Serial Number",),
    "risk_score": ("TruRisk Score",),
    "criticality_score": ("CriticalityScore", "Criticality Score"),
    "tags": ("Tags",),
    "last_logged_on_user": ("Last Logged On User",),
    "last_vuln_scan": ("Last Vuln Scan",),
}

SCANNER_FINDING_COLUMNS: dict[str, tuple[str, ...]] = {
    "host_id": ("QG Host ID", "Host ID"),
    "qid": ("QID",),
    "title": ("Title",),
    "severity": ("Severity",),
    "cve_id": ("CVE ID",),
    "category": ("Category",),
    "first_detected": ("First Detected",),
    "last_detected": ("Last Detected",),
    "solution": ("Solution",),
    "threat": ("Threat",),
    "impact": ("Impact",),
    "risk_score": ("TruRisk Score",),
}

DEVICE_USER_COLUMNS: dict[str, tuple[str, ...]] = {
    "display_name": ("Display name", "Display Name"),
    "user_principal_name": ("User principal name", "User Principal Name"),
    "department": ("Department",),
    "compliance_state": ("Compliance state", "Compliance State"),
}


# ---------------------------------------------------------------------------
# Typed parsers
# ---------------------------------------------------------------------------


def parse_jamf(content: str) -> list[JamfRecord]:
    return _typed(read_rows(content), JamfRecord, JAMF_COLUMNS)


def parse_intune(content: str) -> list[IntuneRecord]:
    return _typed(read_rows(content), IntuneRecord, INTUNE_COLUMNS)


def parse_axonius(content: str) -> list[AxoniusRecord]:
    """Axonius exports put several values in one cell separated by newlines.

    The cells are kept intact here; core/transform.py splits them.
    """
    return _typed(read_rows(content), AxoniusRecord, AXONIUS_COLUMNS)


def parse_scanner_assets(content: str) -> list[ScannerAsset]:
    return _typed(read_rows(content), ScannerAsset, SCANNER_ASSET_COLUMNS)


def parse_scanner_findings(content: str) -> list[ScannerFindingRow]:
    return _typed(read_rows(content), ScannerFindingRow, SCANNER_FINDING_COLUMNS)


def parse_device_users(content: str) -> list[DeviceUserRecord]:
    return _typed(read_rows(content), DeviceUserRecord, DEVICE_USER_COLUMNS)


def parse_directory(content: str) -> list[DirectoryEntry]:
    """Parse the roster export (uid, mail, name, uvRestrict, success).

    Rows without a uid, and rows whose lookup reported failure
    (success = "false"), are skipped.
    """
    entries: list[DirectoryEntry] = []
    for row in read_rows(content):
        uid = (row.get("uid") or row.get("Computing ID") or "").strip().lower()
        if not uid:
            continue
        if (row.get("success") or "").strip().lower() == "false":
            logger.debug("Skipping directory row for %r: %s", uid, row.get("errorMessage") or "lookup failed")
            continue
        restricted = (row.get("uvRestrict") or "").strip().lower() in {"true", "yes", "1", "y"}
        entries.append(
            DirectoryEntry(
                computing_id=uid,
                email=(row.get("mail") or row.get("Email") or "").strip(),
                name=(row.get("name") or row.get("Name") or "").strip(),
                restricted=restricted,
            )
        )
    return entries


# Source name -> parser. Shared by the CLI flags and the upload form fields.
PARSERS: dict[str, Callable[[str], list]] = {
    "jamf": parse_jamf,
    "intune": parse_intune,
    "axonius": parse_axonius,
    "directory": parse_directory,
    "scanner_assets": parse_scanner_assets,
    "scanner_findings": parse_scanner_findings,
    "device_users": parse_device_users,
}
