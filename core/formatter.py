"""
core/formatter.py -- Renders a pipeline Report to terminal output, JSON or CSV.
"""

import csv
import io
import json
import os
import re
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from core.models import (
    STATUS_CRITICAL,
    STATUS_GOOD,
    STATUS_INACTIVE,
    STATUS_ORDER,
    STATUS_UNKNOWN,
    STATUS_WARNING,
    Device,
)
from core.pipeline import Report
from core.summary import Summary

W = 68  # output width

# ---------------------------------------------------------------------------
# ANSI color control
# ---------------------------------------------------------------------------

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from a string."""
    return _ANSI_RE.sub("", text)


def _use_color() -> bool:
    """Return True if stdout is a TTY and color has not been disabled.

    Respects NO_COLOR env var (https://no-color.org) and FORCE_COLOR.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled: Optional[bool] = None  # None = auto-detect


def disable_color() -> None:
    """Force-disable color output (called when --no-color flag is set)."""
    global _color_enabled
    _color_enabled = False


def _color_active() -> bool:
    if _color_enabled is not None:
        return _color_enabled
    return _use_color()


# ---------------------------------------------------------------------------
# ANSI code helpers -- return empty string when color is off
# ---------------------------------------------------------------------------

STATUS_COLORS = {
    STATUS_CRITICAL: "\033[91m",  # red
    STATUS_WARNING: "\033[93m",  # yellow
    STATUS_GOOD: "\033[92m",  # green
    STATUS_UNKNOWN: "\033[94m",  # blue
    STATUS_INACTIVE: "\033[90m",  # grey
}

STATUS_LABELS = {
    STATUS_CRITICAL: "Critical",
    STATUS_WARNING: "Warning",
    STATUS_GOOD: "Good",
    STATUS_UNKNOWN: "Unknown",
    STATUS_INACTIVE: "Inactive",
}


def _reset() -> str:
    return "\033[0m" if _color_active() else ""


def _bold() -> str:
    return "\033[1m" if _color_active() else ""


def _dim() -> str:
    return "\033[2m" if _color_active() else ""


def _s_color(status: str) -> str:
    return STATUS_COLORS.get(status, "") if _color_active() else ""


# ---------------------------------------------------------------------------
# Layout helpers
# ---------------------------------------------------------------------------


def _bar(char: str = "═") -> str:
    return char * W


def _section(title: str) -> str:
    return f"\n  {_bold()}{title}{_reset()}\n  {'─' * (W - 2)}"


def _wrap(text: str, indent: int = 4, width: int = W) -> str:
    """Simple word-wrap at `width` chars with leading indent."""
    words = text.split()
    lines = []
    line = " " * indent
    for word in words:
        if len(line) + len(word) + 1 > width:
            lines.append(line)
            line = " " * indent + word
        else:
            line += ("" if line.strip() == "" else " ") + word
    if line.strip():
        lines.append(line)
    return "\n".join(lines)


def _age(device: Device) -> str:
    return f"{device.age_years:.1f}y" if device.age_years > 0 else "  ?"


def _date(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else "unknown"


# ---------------------------------------------------------------------------
# Terminal renderer
# ---------------------------------------------------------------------------


def _print_counters(summary: Summary) -> None:
    print(_section("FLEET"))
    print(f"    Devices            {summary.total_devices}  ({summary.retired_devices} retired, not counted)")
    for status in STATUS_ORDER:
        color = _s_color(status)
        print(f"    {color}{STATUS_LABELS[status]:<18}{_reset()} {summary.status_counts.get(status, 0)}")
    avg = f"{summary.average_age_years:.1f} years" if summary.average_age_years is not None else "unknown"
    print(f"    Average age        {avg}  (over {summary.devices_with_known_age} with a known age)")
    print(f"    Out of date        {summary.out_of_date_devices}")
    print(
        f"    Replacement        {summary.replacement_recommended} devices, "
        f"est. ${summary.estimated_replacement_cost:,.0f}"
    )

    print(_section("SECURITY"))
    if not summary.devices_with_security_data:
        print("    No scanner data matched any device.")
        return
    print(f"    Scanned devices    {summary.devices_with_security_data}")
    print(f"    Vulnerable         {summary.vulnerable_devices}")
    print(
        f"    Vulnerabilities    {summary.total_vulnerabilities} "
        f"({summary.critical_vulnerabilities} critical, {summary.high_vulnerabilities} high)"
    )
    if summary.average_risk_score is not None:
        print(f"    Average risk       {summary.average_risk_score:.1f} / 1000")


def print_summary(report: Report) -> None:
    """Print fleet counters and a status-grouped device table -- critical first."""
    bold = _bold()
    reset = _reset()
    summary = report.summary
    active = [d for d in report.devices if not d.retired]

    print(f"\n{bold}{_bar()}{reset}")
    print(f"  {bold}FLEET SUMMARY -- {summary.total_devices} devices, {_date(report.generated_at)}{reset}")
    print(f"{bold}{_bar()}{reset}")
    _print_counters(summary)

    by_status: dict[str, list[Device]] = {s: [] for s in STATUS_ORDER}
    for device in active:
        by_status.setdefault(device.status, []).append(device)

    for status, group in by_status.items():
        if not group:
            continue
        color = _s_color(status)
        header = STATUS_LABELS.get(status, status.title())
        print(f"\n  {color}{bold}{header:<46}({len(group)}){reset}")
        print(f"  {'─' * (W - 2)}")
        for device in group:
            replace_tag = f"{bold}R{reset}" if device.replacement_recommended else " "
            vulns = f"{device.security.critical_high_count:>3}v" if device.security else "   -"
            print(f"  {device.name[:22]:<22} {_age(device):>5} {replace_tag} {vulns}  {device.owner[:30]}")

    print(f"\n{_bar()}\n")


def print_device(device: Device) -> None:
    """Full detail block for one device (--full)."""
    bold = _bold()
    reset = _reset()
    color = _s_color(device.status)

    print(f"\n{bold}{_bar('─')}{reset}")
    print(f"  {bold}{device.name}{reset}  │  {color}{STATUS_LABELS.get(device.status, device.status)}{reset}")
    print(f"  {_dim()}{device.id}  ({device.source}){reset}")

    print(_section("HARDWARE"))
    for label, value in [
        ("Model", device.model),
        ("Manufacturer", device.manufacturer),
        ("Serial", device.serial_number),
        ("OS", f"{device.os_type} {device.os_version}"),
        ("Age", f"{_age(device).strip()} (from {device.age_basis})"),
        ("Last update", _date(device.last_update)),
    ]:
        if value:
            print(f"    {label:<16} {value}")

    print(_section("OWNERSHIP"))
    print(f"    {'Owner':<16} {device.owner}")
    if device.additional_owner:
        print(f"    {'Also':<16} {device.additional_owner}")
    if device.department:
        print(f"    {'Department':<16} {device.department}")

    print(_section("WHY"))
    for reason in device.status_reasons:
        print(_wrap(f"• {reason}"))
    if device.replacement_reason:
        print(_wrap(f"Replace: {device.replacement_reason}"))

    if device.security is not None:
        sec = device.security
        print(_section("SECURITY"))
        print(f"    {sec.total_count} findings, {sec.critical_count} critical, {sec.high_count} high")
        if sec.risk_score is not None:
            print(f"    Risk score {sec.risk_score}  (matched by {sec.matched_by})")
        for cve in sec.top_cves:
            print(f"    • {cve}")

    if device.notes:
        print(_section("NOTES"))
        print(_wrap(device.notes))


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def device_to_dict(device: Device) -> dict:
    d = asdict(device)
    d["status_reason"] = device.status_reason
    d["notes"] = device.notes
    return d


def to_json(report: Report) -> str:
    """Devices and summary as one JSON document; datetimes as ISO 8601."""
    payload = {
        "generated_at": report.generated_at,
        "summary": asdict(report.summary),
        "devices": [device_to_dict(d) for d in report.devices],
    }
    return json.dumps(payload, indent=2, default=lambda v: v.isoformat() if isinstance(v, datetime) else str(v))


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _sanitize_csv_cell(value) -> str:
    """Neutralize spreadsheet formula injection (CWE-1236).

    Cells starting with = + - or @ get a leading tab so spreadsheet
    applications read them as text.
    """
    if value is None:
        return ""
    text = str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "\t" + text
    return text


CSV_HEADERS = [
    "id",
    "name",
    "source",
    "status",
    "activity_status",
    "owner",
    "owner_email",
    "additional_owner",
    "department",
    "os_type",
    "os_version",
    "model",
    "serial_number",
    "age_years",
    "days_since_update",
    "replacement_recommended",
    "replacement_reason",
    "vulnerabilities",
    "critical_high",
    "risk_score",
    "retired",
    "status_reason",
    "notes",
]


def to_csv(devices: list[Device]) -> str:
    """Render devices as CSV, one row per device. Every free-text cell is sanitized."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)

    for d in devices:
        sec = d.security
        writer.writerow(
            _sanitize_csv_cell(v)
            for v in [
                d.id,
                d.name,
                d.source,
                d.status,
                d.activity_status,
                d.owner,
                d.owner_email,
                d.additional_owner,
                d.department,
                d.os_type,
                d.os_version,
                d.model,
                d.serial_number,
                d.age_years if d.age_years > 0 else "",
                d.days_since_update,
                d.replacement_recommended,
                d.replacement_reason,
                sec.total_count if sec else "",
                sec.critical_high_count if sec else "",
                sec.risk_score if sec and sec.risk_score is not None else "",
                d.retired,
                d.status_reason,
                d.notes,
            ]
        )

    return buf.getvalue()
