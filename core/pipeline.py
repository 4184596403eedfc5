"""
core/pipeline.py -- Pure reconciliation pipeline.

parse -> transform -> merge -> enrich (ownership, security) -> overlay -> summarize

No side effects. No print statements. No file, network or database access:
callers (main.py, api/routes/v1/reports.py) read the exports and the
settings store and hand typed records in through a SourceBundle.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from core.config import Settings, get_settings
from core.dates import utcnow
from core.enricher import build_device_user_map, enrich_ownership, enrich_security
from core.hardware import DEFAULT_CATALOG, ModelCatalog
from core.identity import Directory, same_identity
from core.models import STATUS_ORDER, Device, DirectoryEntry, SettingsOverlay
from core.summary import Summary, summarize
from core.transform import transform_axonius, transform_intune, transform_jamf
from inventory.ingest import PARSERS
from inventory.models import (
    AxoniusRecord,
    DeviceUserRecord,
    IntuneRecord,
    JamfRecord,
    ScannerAsset,
    ScannerFindingRow,
)

logger = logging.getLogger("fleetwatch.pipeline")


@dataclass
class SourceBundle:
    """Typed inputs for one run. Any subset may be empty."""

    jamf: list[JamfRecord] = field(default_factory=list)
    intune: list[IntuneRecord] = field(default_factory=list)
    axonius: list[AxoniusRecord] = field(default_factory=list)
    directory: list[DirectoryEntry] = field(default_factory=list)
    scanner_assets: list[ScannerAsset] = field(default_factory=list)
    scanner_findings: list[ScannerFindingRow] = field(default_factory=list)
    device_users: list[DeviceUserRecord] = field(default_factory=list)

    @classmethod
    def from_texts(cls, texts: dict[str, str]) -> "SourceBundle":
        """Parse raw export text keyed by source name (see inventory.ingest.PARSERS).

        Unknown keys are ignored.
        """
        parsed = {name: PARSERS[name](content) for name, content in texts.items() if name in PARSERS and content}
        return cls(**parsed)

    def is_empty(self) -> bool:
        return not (self.jamf or self.intune or self.axonius)


@dataclass
class Report:
    devices: list[Device]
    summary: Summary
    generated_at: datetime


def merge_devices(*device_lists: Iterable[Device]) -> list[Device]:
    """Concatenate per-source lists; sort critical first, then oldest first.

    The sort is stable. No cross-source identity merge is attempted: the same
    machine reported by two sources appears twice.
    """
    merged = [device for devices in device_lists for device in devices]
    return sorted(merged, key=lambda d: (STATUS_ORDER.get(d.status, len(STATUS_ORDER)), -d.age_years))


def apply_settings(
    devices: Iterable[Device],
    overlay: Optional[SettingsOverlay],
    directory: Optional[Directory] = None,
) -> list[Device]:
    """Return copies with the user-maintained retired flag, notes and owner applied.

    An owner override takes its email from the directory when the override
    names a known person; otherwise the previous owner's email is cleared.
    """
    if overlay is None:
        return list(devices)
    result: list[Device] = []
    for device in devices:
        retired = device.id in overlay.retired_ids
        note = overlay.notes.get(device.id)
        owner = overlay.owner_overrides.get(device.id)
        if not (retired or note or owner):
            result.append(device)
            continue
        device = replace(device, annotations=list(device.annotations), status_reasons=list(device.status_reasons))
        device.retired = retired
        if note:
            device.user_notes = note
        if owner:
            device.owner_override = owner
            device.owner = owner
            entry = directory.find(owner) if directory is not None else None
            device.owner_email = (entry.email or None) if entry is not None else None
            if same_identity(owner, device.additional_owner, directory):
                device.additional_owner = None
        result.append(device)
    return result


def run_pipeline(
    sources: SourceBundle,
    overlay: Optional[SettingsOverlay] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    catalog: Optional[ModelCatalog] = None,
) -> Report:
    """Run every stage over one snapshot of inputs and return devices + summary."""
    settings = settings or get_settings()
    now = now or utcnow()
    catalog = catalog or DEFAULT_CATALOG
    directory = Directory(sources.directory, settings)

    devices = merge_devices(
        transform_jamf(sources.jamf, directory, settings, now, catalog),
        transform_intune(sources.intune, directory, settings, now, catalog),
        transform_axonius(sources.axonius, directory, settings, now, catalog),
    )
    if sources.device_users:
        devices = enrich_ownership(devices, build_device_user_map(sources.device_users), directory, settings)
    if sources.scanner_assets:
        devices = enrich_security(devices, sources.scanner_assets, sources.scanner_findings, settings, directory)
    devices = apply_settings(devices, overlay, directory)

    summary = summarize(devices, settings)
    logger.info(
        "Pipeline: %d devices (%d critical, %d warning, %d retired)",
        len(devices),
        summary.critical,
        summary.warning,
        summary.retired_devices,
    )
    return Report(devices=devices, summary=summary, generated_at=now)
