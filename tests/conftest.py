"""
tests/conftest.py -- Shared test fixtures for fleetwatch tests.

This module provides:
  - settings / now / directory: a fixed policy, a fixed clock and a small
    roster so pipeline tests are deterministic
  - export_texts: one small raw export per source, as the CLI and API receive them
  - _make_test_store(): an isolated in-memory settings store
  - _patch_lifespan(): wires the test store into app.state, bypassing real startup
  - api_client: TestClient for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app
from core.config import Settings
from core.identity import Directory
from core.models import DirectoryEntry
from inventory.store import SettingsStore

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

ROSTER = [
    DirectoryEntry(computing_id="jsm2ku", email="jsm2ku@virginia.edu", name="Jane Smith"),
    DirectoryEntry(computing_id="abc1de", email="abc1de@virginia.edu", name="Alex Brown"),
    DirectoryEntry(computing_id="bh4hb", email="bh4hb@virginia.edu", name="Ben Hartless"),
    DirectoryEntry(computing_id="jww8je", email="jww8je@virginia.edu", name="Jeffrey Whelchel"),
]


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Default policy, independent of any .env file in the working directory."""
    return Settings(_env_file=None)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def directory(settings: Settings) -> Directory:
    return Directory(ROSTER, settings)


# Five devices once merged, at NOW:
#   FBS-jsm2ku-2022  critical  (2017 model, provisioner swapped out)
#   BA-abc1de-2024   good      (warranty 1.8 years)
#   BA-PC1           good      (age unknown, scanner match by name)
#   BA-PC2           unknown   (owner from the device directory)
#   BA-LAB-2019      inactive  (108 days since check-in)
EXPORTS = {
    "jamf": (
        "Computer Name,Serial Number,Model,Operating System Version,Full Name,Email Address,"
        "Warranty Expiration,Last Check-in,Managed,Supervised\n"
        'FBS-jsm2ku-2022,C02ABC123,"MacBookPro14,1",13.6,Ben Hartless,bh4hb@virginia.edu,'
        "2026-06-01,2026-10-15,Managed,Yes\n"
        'BA-abc1de-2024,C02NEW001,"Mac15,12",14.5,Alex Brown,abc1de@virginia.edu,'
        "2028-01-01,2026-10-16,Managed,Yes\n"
        "BA-LAB-2019,C02OLD999,,14.5,,,,2026-07-01,Managed,No\n"
    ),
    "intune": (
        "DeviceName,UPN,ReportStatus,PspdpuLastModifiedTimeUtc\n"
        "BA-PC1,abc1de@virginia.edu,Succeeded,2026-10-10\n"
        "BA-PC2,,Error,\n"
    ),
    "directory": (
        "uid,mail,name\n"
        "jsm2ku,jsm2ku@virginia.edu,Jane Smith\n"
        "abc1de,abc1de@virginia.edu,Alex Brown\n"
        "bh4hb,bh4hb@virginia.edu,Ben Hartless\n"
    ),
    "scanner_assets": ("Host ID,Asset Name,TruRisk Score,Last Logged On User\n77,BA-PC1,850,ESERVICES\\abc1de\n"),
    "scanner_findings": (
        "QG Host ID,QID,Title,Severity,CVE ID\n77,1,OpenSSL,5,CVE-2024-0001\n77,2,Chrome,4,CVE-2024-0002\n"
    ),
    "device_users": (
        "Display name,User principal name,Department,Compliance state\n"
        "BA-PC2,jsm2ku@virginia.edu,Batten,Noncompliant\n"
    ),
}


@pytest.fixture
def export_texts() -> dict[str, str]:
    return dict(EXPORTS)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> SettingsStore:
    """Create an isolated named shared-memory SQLite settings store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'store').
    """
    return SettingsStore(db_url=f"sqlite:///file:test_settings_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: SettingsStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings_store = store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SettingsStore], None, None]:
    """Yield (client, store) for API integration tests.

    base_url uses localhost so requests pass TrustedHostMiddleware.
    """
    store = _make_test_store("api")
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, store

    store.close()


@pytest.fixture
def store(request) -> Generator[SettingsStore, None, None]:
    """A fresh settings store per test, named after the test."""
    s = _make_test_store(f"store_{request.node.name}")
    yield s
    s.close()
