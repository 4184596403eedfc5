"""
inventory/models.py -- Typed per-source export records.

These are pure data containers with zero logic. The parsers in
inventory/ingest.py reduce each untyped CSV row to one of these as early as
possible, so nothing past the parser boundary carries string-keyed dicts.

Values stay as (trimmed) strings: interpreting dates, numbers and flags is the
transformers' job in core/transform.py and core/enricher.py, where "unknown"
has a defined meaning.
"""

from dataclasses import dataclass


@dataclass
class JamfRecord:
    """One computer row from the Jamf Pro inventory export."""

    computer_name: str = ""
    processor_type: str = ""
    warranty_expiration: str = ""
    supervised: str = ""  # "Yes" | "No"
    serial_number: str = ""
    last_check_in: str = ""
    full_name: str = ""
    department: str = ""
    last_inventory_update: str = ""
    mac_address: str = ""
    model: str = ""
    username: str = ""
    os_version: str = ""
    managed: str = ""  # "Managed" | "Unmanaged"
    email_address: str = ""
    make: str = ""


@dataclass
class IntuneRecord:
    """One device row from the Intune configuration report."""

    device_name: str = ""
    upn: str = ""
    report_status: str = ""  # "Succeeded" | "Error" | ...
    last_modified: str = ""


@dataclass
class AxoniusRecord:
    """One aggregated device row. Most fields hold newline-separated values."""

    adapter_connections: str = ""
    asset_name: str = ""
    host_name: str = ""
    last_used_users: str = ""
    last_used_users_description: str = ""
    last_seen: str = ""
    mac_addresses: str = ""
    ip_addresses: str = ""
    os_type: str = ""
    device_model: str = ""
    epss_cve_ids: str = ""
    epss_scores: str = ""
    epss_severities: str = ""
    bios_serial: str = ""
    manufacturer_serial: str = ""


@dataclass
class ScannerAsset:
    """One host row from the Qualys asset inventory export."""

    agent_id: str = ""
    host_id: str = ""
    asset_name: str = ""
    netbios_name: str = ""
    mac_address: str = ""
    ipv4_address: str = ""
    bios_serial: str = ""
    risk_score: str = ""  # TruRisk, 0-1000
    criticality_score: str = ""
    tags: str = ""  # comma separated
    last_logged_on_user: str = ""
    last_vuln_scan: str = ""


@dataclass
class ScannerFindingRow:
    """One detection row from the Qualys vulnerability export."""

    host_id: str = ""
    qid: str = ""
    title: str = ""
    severity: str = ""
    cve_id: str = ""
    category: str = ""
    first_detected: str = ""
    last_detected: str = ""
    solution: str = ""
    threat: str = ""
    impact: str = ""
    risk_score: str = ""


@dataclass
class DeviceUserRecord:
    """One row of the Entra device export: a direct device -> user mapping."""

    display_name: str = ""
    user_principal_name: str = ""
    department: str = ""
    compliance_state: str = ""
