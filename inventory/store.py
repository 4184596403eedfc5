"""
inventory/store.py -- SQLAlchemy-backed persistence for per-device settings.

The pipeline never writes here. The CLI and API read a SettingsOverlay
snapshot with load_overlay() before a run; the API's settings endpoints are the
only writers.

Three small tables, one per override kind, each keyed by device id:

  retired_devices   device ids the user has marked as retired
  device_notes      free-text notes that replace computed notes for display
  owner_overrides   manual primary owner

Uses SQLAlchemy Core (not ORM), Repository + Data Mapper, bound parameters
throughout.

Usage:
    store = SettingsStore()                               # SQLite default
    store = SettingsStore("postgresql://user:pw@host/db") # PostgreSQL
    store.set_retired("jamf-C02ABC", True)
    store.set_note("jamf-C02ABC", "Loaner pool")
    overlay = store.load_overlay()
    store.close()
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from core.models import SettingsOverlay

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'fleetwatch_settings.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_retired = Table(
    "retired_devices",
    metadata,
    Column("device_id", String(255), primary_key=True),
    Column("retired_at", String(32), nullable=False),
)

_notes = Table(
    "device_notes",
    metadata,
    Column("device_id", String(255), primary_key=True),
    Column("note", Text, nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_owners = Table(
    "owner_overrides",
    metadata,
    Column("device_id", String(255), primary_key=True),
    Column("owner", String(255), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per connection; PRAGMAs are not pooled."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SettingsStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Requests are served from a thread pool; one pooled connection
            # may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def set_retired(self, device_id: str, retired: bool) -> None:
        """Mark or unmark a device as retired. Idempotent."""
        with self.engine.connect() as conn:
            conn.execute(_retired.delete().where(_retired.c.device_id == device_id))
            if retired:
                conn.execute(_retired.insert().values(device_id=device_id, retired_at=_now_iso()))
            conn.commit()

    def set_note(self, device_id: str, note: Optional[str]) -> None:
        """Store a note; None or blank clears it."""
        with self.engine.connect() as conn:
            conn.execute(_notes.delete().where(_notes.c.device_id == device_id))
            if note and note.strip():
                conn.execute(_notes.insert().values(device_id=device_id, note=note.strip(), updated_at=_now_iso()))
            conn.commit()

    def set_owner(self, device_id: str, owner: Optional[str]) -> None:
        """Store a manual owner; None or blank clears it."""
        with self.engine.connect() as conn:
            conn.execute(_owners.delete().where(_owners.c.device_id == device_id))
            if owner and owner.strip():
                conn.execute(_owners.insert().values(device_id=device_id, owner=owner.strip(), updated_at=_now_iso()))
            conn.commit()

    def load_overlay(self) -> SettingsOverlay:
        """Snapshot all three maps. The result is not affected by later writes."""
        with self.engine.connect() as conn:
            retired = conn.execute(_retired.select()).fetchall()
            notes = conn.execute(_notes.select()).fetchall()
            owners = conn.execute(_owners.select()).fetchall()
        return _rows_to_overlay(retired, notes, owners)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _rows_to_overlay(retired, notes, owners) -> SettingsOverlay:
    return SettingsOverlay(
        retired_ids=frozenset(r.device_id for r in retired),
        notes={r.device_id: r.note for r in notes},
        owner_overrides={r.device_id: r.owner for r in owners},
    )
