"""
tests/test_api_routes.py -- Integration tests for the report and settings routes.

These tests exercise the full stack: FastAPI routing -> multipart upload ->
pipeline -> SettingsStore overlay -> response model serialization. Unit testing
individual route functions would miss middleware, validation and response
model behaviour -- integration tests are the right tool here.

Coverage:
  - POST /reports happy path, device source required (400), size cap (413)
  - Settings round trip: PUT retired/notes/owner, GET /settings, blank clears
  - Saved settings reach the next report as the final overlay
  - Validation failures use the ErrorResponse envelope (422)

Fixtures used (from conftest.py):
  - api_client: (client, store) -- TestClient over a shared-memory settings store
  - export_texts: raw export text per source
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from inventory.store import SettingsStore


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Route limits are per client address; every test starts with a fresh budget."""
    limiter.reset()
    yield


def _files(texts: dict[str, str]) -> dict:
    return {name: (f"{name}.csv", content.encode("utf-8"), "text/csv") for name, content in texts.items()}


class TestCreateReport:
    def test_report_from_uploads(self, api_client: tuple[TestClient, SettingsStore], export_texts) -> None:
        client, _store = api_client
        resp = client.post("/api/v1/reports", files=_files(export_texts))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["sources"] == sorted(export_texts)
        assert [d["name"] for d in data["devices"]][:2] == ["FBS-jsm2ku-2022", "BA-abc1de-2024"]
        assert data["summary"]["status_counts"]["critical"] == 1
        first = data["devices"][0]
        assert first["owner"] == "Jane Smith"
        assert first["additional_owner"] == "Ben Hartless (IT Provisioner)"
        assert first["status_reason"]

    def test_security_serialized(self, api_client: tuple[TestClient, SettingsStore], export_texts) -> None:
        client, _store = api_client
        data = client.post("/api/v1/reports", files=_files(export_texts)).json()
        pc1 = next(d for d in data["devices"] if d["name"] == "BA-PC1")
        assert pc1["security"]["matched_by"] == "name"
        assert pc1["security"]["top_cves"] == ["CVE-2024-0001", "CVE-2024-0002"]
        assert [f["severity"] for f in pc1["security"]["findings"]] == [5, 4]

    def test_single_source_is_enough(self, api_client: tuple[TestClient, SettingsStore], export_texts) -> None:
        client, _store = api_client
        resp = client.post("/api/v1/reports", files=_files({"intune": export_texts["intune"]}))
        assert resp.status_code == 200
        assert resp.json()["summary"]["total_devices"] == 2

    def test_header_only_export_is_valid(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.post("/api/v1/reports", files=_files({"jamf": "Computer Name,Serial Number\n"}))
        assert resp.status_code == 200
        assert resp.json()["devices"] == []

    def test_no_device_source_is_400(self, api_client: tuple[TestClient, SettingsStore], export_texts) -> None:
        client, _store = api_client
        resp = client.post("/api/v1/reports", files=_files({"directory": export_texts["directory"]}))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_device_source"

    def test_oversized_upload_is_413(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        big = b"x" * (5 * 1024 * 1024 + 1)
        resp = client.post("/api/v1/reports", files={"jamf": ("jamf.csv", big, "text/csv")})
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "file_too_large"


class TestSettingsRoutes:
    def test_retired_round_trip(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.put("/api/v1/settings/jamf-RETIRE1/retired", json={"retired": True})
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"device_id": "jamf-RETIRE1", "retired": True, "note": None, "owner": None}
        assert "jamf-RETIRE1" in client.get("/api/v1/settings").json()["retired_ids"]

        client.put("/api/v1/settings/jamf-RETIRE1/retired", json={"retired": False})
        assert "jamf-RETIRE1" not in client.get("/api/v1/settings").json()["retired_ids"]

    def test_note_set_and_clear(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.put("/api/v1/settings/intune-BA-NOTE/notes", json={"note": "  Loaner pool  "})
        assert resp.json()["note"] == "Loaner pool"
        resp = client.put("/api/v1/settings/intune-BA-NOTE/notes", json={"note": ""})
        assert resp.json()["note"] is None
        assert "intune-BA-NOTE" not in client.get("/api/v1/settings").json()["notes"]

    def test_owner_set(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.put("/api/v1/settings/jamf-OWN1/owner", json={"owner": "Alex Brown"})
        assert resp.json()["owner"] == "Alex Brown"
        assert client.get("/api/v1/settings").json()["owner_overrides"]["jamf-OWN1"] == "Alex Brown"

    def test_invalid_body_is_422(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.put("/api/v1/settings/jamf-X/retired", json={"retired": "sometimes"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_note_too_long_is_422(self, api_client: tuple[TestClient, SettingsStore]) -> None:
        client, _store = api_client
        resp = client.put("/api/v1/settings/jamf-X/notes", json={"note": "n" * 2001})
        assert resp.status_code == 422

    def test_saved_settings_reach_next_report(
        self, api_client: tuple[TestClient, SettingsStore], export_texts
    ) -> None:
        client, store = api_client
        client.put("/api/v1/settings/jamf-C02OLD999/retired", json={"retired": True})
        client.put("/api/v1/settings/jamf-C02ABC123/owner", json={"owner": "Ben Hartless"})
        try:
            data = client.post("/api/v1/reports", files=_files(export_texts)).json()
            assert data["summary"]["retired_devices"] == 1
            assert data["summary"]["inactive_devices"] == 0
            retired = next(d for d in data["devices"] if d["id"] == "jamf-C02OLD999")
            assert retired["retired"] is True
            owned = next(d for d in data["devices"] if d["id"] == "jamf-C02ABC123")
            assert owned["owner"] == "Ben Hartless"
            assert owned["additional_owner"] is None
        finally:
            store.set_retired("jamf-C02OLD999", False)
            store.set_owner("jamf-C02ABC123", None)
