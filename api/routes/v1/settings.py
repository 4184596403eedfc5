"""
api/routes/v1/settings.py -- Per-device settings overlay routes.

Routes:
  GET    /settings                         -- full overlay (retired, notes, owners)
  PUT    /settings/{device_id}/retired     -- mark or unmark retired
  PUT    /settings/{device_id}/notes       -- set or clear the user note
  PUT    /settings/{device_id}/owner       -- set or clear the manual owner

Device ids are the pipeline's deterministic ids ("jamf-C02ABC123",
"intune-FBS-JSM2KU-2022"). The store does not check that a device exists:
settings for a device absent from the current exports are kept for the next
import.
"""

from fastapi import APIRouter, HTTPException, Request

from api.limiter import limiter
from api.models import DeviceSettingsResponse, ErrorDetail, NoteUpdate, OwnerUpdate, RetiredUpdate, SettingsResponse
from inventory.store import SettingsStore

router = APIRouter()


def _store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def _check_id(device_id: str) -> str:
    device_id = device_id.strip()
    if not device_id:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_device_id", message="Device id must not be blank.").model_dump(),
        )
    return device_id


@limiter.limit("60/minute")
@router.get("/settings", response_model=SettingsResponse)
def get_settings_overlay(request: Request) -> SettingsResponse:
    return SettingsResponse.from_overlay(_store(request).load_overlay())


@limiter.limit("30/minute")
@router.put("/settings/{device_id}/retired", response_model=DeviceSettingsResponse)
def set_retired(request: Request, device_id: str, body: RetiredUpdate) -> DeviceSettingsResponse:
    """Retired devices stay in the report but leave every summary ratio."""
    device_id = _check_id(device_id)
    store = _store(request)
    store.set_retired(device_id, body.retired)
    return DeviceSettingsResponse.from_overlay(device_id, store.load_overlay())


@limiter.limit("30/minute")
@router.put("/settings/{device_id}/notes", response_model=DeviceSettingsResponse)
def set_note(request: Request, device_id: str, body: NoteUpdate) -> DeviceSettingsResponse:
    device_id = _check_id(device_id)
    store = _store(request)
    store.set_note(device_id, body.note)
    return DeviceSettingsResponse.from_overlay(device_id, store.load_overlay())


@limiter.limit("30/minute")
@router.put("/settings/{device_id}/owner", response_model=DeviceSettingsResponse)
def set_owner(request: Request, device_id: str, body: OwnerUpdate) -> DeviceSettingsResponse:
    """The manual owner replaces the computed primary owner on the next report."""
    device_id = _check_id(device_id)
    store = _store(request)
    store.set_owner(device_id, body.owner)
    return DeviceSettingsResponse.from_overlay(device_id, store.load_overlay())
