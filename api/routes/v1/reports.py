"""
api/routes/v1/reports.py -- Fleet report route for the fleetwatch REST API.

Routes:
  POST   /reports   -- upload any subset of the exports, get devices + summary

File uploads:
  multipart/form-data, one optional file field per source (jamf, intune,
  axonius, directory, scanner_assets, scanner_findings, device_users). Each
  file is capped at Settings.max_upload_bytes. At least one device source
  (jamf, intune or axonius) is required. Undecodable bytes are replaced, not
  rejected.

The saved per-device settings are read once per request and applied as the
final overlay; the pipeline itself never writes to the store.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from api.limiter import limiter
from api.models import ErrorDetail, ReportResponse
from core.config import get_settings
from core.pipeline import SourceBundle, run_pipeline
from inventory.store import SettingsStore

logger = logging.getLogger("fleetwatch.api.reports")

router = APIRouter()

_DEVICE_SOURCES = ("jamf", "intune", "axonius")


async def _read_upload(name: str, upload: Optional[UploadFile], max_bytes: int) -> Optional[str]:
    """Read one uploaded export, enforcing the size cap. None when not supplied."""
    if upload is None:
        return None
    # Size guard -- read up to the cap + 1 byte; reject if over limit
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Upload '{name}' must be {max_bytes // (1024 * 1024)} MB or smaller.",
            ).model_dump(),
        )
    return raw.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# POST /reports -- run the pipeline over uploaded exports
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")
@router.post("/reports", response_model=ReportResponse)
async def create_report(
    request: Request,
    jamf: Optional[UploadFile] = File(None),
    intune: Optional[UploadFile] = File(None),
    axonius: Optional[UploadFile] = File(None),
    directory: Optional[UploadFile] = File(None),
    scanner_assets: Optional[UploadFile] = File(None),
    scanner_findings: Optional[UploadFile] = File(None),
    device_users: Optional[UploadFile] = File(None),
) -> ReportResponse:
    """Reconcile the uploaded exports into one classified device list.

    An empty or header-only export is valid and contributes no devices.
    """
    settings = get_settings()
    uploads = {
        "jamf": jamf,
        "intune": intune,
        "axonius": axonius,
        "directory": directory,
        "scanner_assets": scanner_assets,
        "scanner_findings": scanner_findings,
        "device_users": device_users,
    }

    texts: dict[str, str] = {}
    for name, upload in uploads.items():
        content = await _read_upload(name, upload, settings.max_upload_bytes)
        if content is not None:
            texts[name] = content

    if not any(name in texts for name in _DEVICE_SOURCES):
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="no_device_source",
                message="Upload at least one of: jamf, intune, axonius.",
            ).model_dump(),
        )

    store: SettingsStore = request.app.state.settings_store
    overlay = store.load_overlay()
    report = run_pipeline(SourceBundle.from_texts(texts), overlay=overlay, settings=settings)
    logger.info("Report built from %s: %d devices", ", ".join(sorted(texts)), len(report.devices))
    return ReportResponse.from_report(report, sorted(texts))
