"""
core/findings.py -- Vulnerability finding ordering and roll-up counts.

Shared by the aggregated-inventory transformer (which carries its own scanner
columns) and the security enricher (which joins the scanner exports).
"""

import math
from collections.abc import Iterable
from typing import Optional

from core.config import Settings, get_settings
from core.models import SecurityFinding, SecurityRecord


def parse_int(value: Optional[str]) -> Optional[int]:
    """Integer from an export cell ("850", "850.0"); None when blank or garbage."""
    number = parse_float(value)
    return int(number) if number is not None else None


def parse_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        number = float(value.strip().replace(",", ""))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def sort_findings(findings: Iterable[SecurityFinding]) -> list[SecurityFinding]:
    """Severity descending, then risk sub-score descending. Stable for ties."""
    return sorted(findings, key=lambda f: (-f.severity, -(f.risk_score or 0)))


def roll_up(findings: Iterable[SecurityFinding], settings: Optional[Settings] = None, **fields) -> SecurityRecord:
    """Build a SecurityRecord with sorted findings, severity counts and top CVEs.

    Extra keyword arguments (agent_id, risk_score, ip_address, ...) are passed
    straight to the record.
    """
    settings = settings or get_settings()
    ordered = sort_findings(findings)
    severe = [f for f in ordered if f.severity >= 4]
    top_cves: list[str] = []
    for finding in severe:
        if finding.cve_id and finding.cve_id not in top_cves:
            top_cves.append(finding.cve_id)
        if len(top_cves) >= settings.top_cve_limit:
            break
    return SecurityRecord(
        findings=ordered,
        total_count=len(ordered),
        critical_high_count=len(severe),
        high_count=sum(1 for f in ordered if f.severity == 4),
        critical_count=sum(1 for f in ordered if f.severity >= 5),
        top_cves=top_cves,
        **fields,
    )
