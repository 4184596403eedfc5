#!/usr/bin/env python3
"""
fleetwatch -- Device inventory reconciliation and lifecycle report.
Reads endpoint-management and scanner exports; no network access.

Usage:
  python main.py --jamf jamf.csv
  python main.py --jamf jamf.csv --intune intune.csv --directory roster.csv
  python main.py --axonius axonius.csv --scanner-assets assets.csv --scanner-findings vulns.csv
  python main.py --jamf jamf.csv --format csv > fleet.csv
  python main.py --jamf jamf.csv --settings-db sqlite:///fleetwatch_settings.db
  python main.py --jamf jamf.csv --no-color

Environment variables:
  Every policy setting in core/config.py may be set from the environment or a
  .env file, e.g. REPLACEMENT_POLICY_YEARS=4 or INACTIVITY_DAYS=45.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

from core.config import get_settings
from core.formatter import disable_color, print_device, print_summary, to_csv, to_json
from core.pipeline import SourceBundle, run_pipeline
from inventory.store import SettingsStore

logger = logging.getLogger("fleetwatch.cli")

# CLI flag destination -> source name in inventory.ingest.PARSERS
_SOURCE_FLAGS = {
    "jamf": "Jamf Pro computer inventory export",
    "intune": "Intune device configuration report",
    "axonius": "Axonius aggregated device export",
    "directory": "Directory roster (uid, mail, name)",
    "scanner_assets": "Qualys asset inventory export",
    "scanner_findings": "Qualys vulnerability detections export",
    "device_users": "Entra device -> user export",
}


def _read_export(path: str) -> Optional[str]:
    """Read one export file. Returns None (with a message) when it cannot be read.

    Resolves symlinks and verifies the path is a regular file before reading.
    Undecodable bytes become replacement characters rather than errors.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return None
    try:
        return file_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"  [!] Could not read file '{path}': {e}")
        return None


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="fleetwatch",
        description="Reconcile device inventory exports into one classified fleet report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --jamf jamf.csv --directory roster.csv
  python main.py --jamf jamf.csv --intune intune.csv --device-users entra.csv
  python main.py --axonius axonius.csv --scanner-assets assets.csv --scanner-findings vulns.csv
  python main.py --jamf jamf.csv --full
  python main.py --jamf jamf.csv --format json > fleet.json
  python main.py --jamf jamf.csv --format csv > fleet.csv
        """,
    )
    for dest, help_text in _SOURCE_FLAGS.items():
        parser.add_argument(f"--{dest.replace('_', '-')}", dest=dest, metavar="PATH", help=help_text)
    parser.add_argument(
        "--format",
        choices=["terminal", "json", "csv"],
        default="terminal",
        metavar="FORMAT",
        help="Output format: terminal (default), json, or csv",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="Print the full detail block for every device after the summary",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color codes in terminal output",
    )
    parser.add_argument(
        "--settings-db",
        metavar="URL",
        help="SQLAlchemy URL of the per-device settings store (retired, notes, owner)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log matching decisions to stderr",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Apply color preference before any output
    if args.no_color:
        disable_color()

    texts: dict[str, str] = {}
    for dest in _SOURCE_FLAGS:
        path = getattr(args, dest)
        if not path:
            continue
        content = _read_export(path)
        if content is not None:
            texts[dest] = content

    if not any(name in texts for name in ("jamf", "intune", "axonius")):
        parser.print_help()
        print("\n  [!] At least one of --jamf, --intune or --axonius is required.\n")
        return

    settings = get_settings()
    overlay = None
    db_url = args.settings_db or settings.database_url
    if db_url:
        store = SettingsStore(db_url)
        try:
            overlay = store.load_overlay()
        finally:
            store.close()

    terminal = args.format == "terminal"
    if terminal:
        print("\nfleetwatch -- Device Inventory Report")
        print("─" * 40)
        print(f"Loaded {', '.join(sorted(texts))}.\n")

    report = run_pipeline(SourceBundle.from_texts(texts), overlay=overlay, settings=settings)

    if args.format == "json":
        print(to_json(report))
    elif args.format == "csv":
        print(to_csv(report.devices))
    else:
        print_summary(report)
        if args.full:
            for device in report.devices:
                if not device.retired:
                    print_device(device)
        elif report.devices:
            print("\n  Run with --full to see the detail for each device.\n")


if __name__ == "__main__":
    main()
