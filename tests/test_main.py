"""
tests/test_main.py -- End-to-end tests for the fleetwatch CLI (main.py).

Exports are written to tmp_path and passed by flag, exactly as an operator
would. Output is captured with capsys.
"""

import csv
import io
import json
import sys

import pytest

import core.formatter as formatter
import main
from inventory.store import SettingsStore


@pytest.fixture
def export_paths(tmp_path, export_texts) -> dict[str, str]:
    paths = {}
    for name, content in export_texts.items():
        path = tmp_path / f"{name}.csv"
        path.write_text(content, encoding="utf-8")
        paths[name] = str(path)
    return paths


def _run(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["fleetwatch", *argv])
    main.main()


class TestCli:
    def test_json_output(self, monkeypatch, capsys, export_paths):
        _run(
            monkeypatch,
            "--jamf", export_paths["jamf"],
            "--intune", export_paths["intune"],
            "--directory", export_paths["directory"],
            "--format", "json",
        )
        payload = json.loads(capsys.readouterr().out)
        assert payload["summary"]["total_devices"] == 5
        names = [d["name"] for d in payload["devices"]]
        assert names[0] == "FBS-jsm2ku-2022"
        assert payload["devices"][0]["additional_owner"] == "Ben Hartless (IT Provisioner)"

    def test_csv_output(self, monkeypatch, capsys, export_paths):
        _run(monkeypatch, "--intune", export_paths["intune"], "--format", "csv")
        rows = list(csv.DictReader(io.StringIO(capsys.readouterr().out.strip())))
        assert sorted(r["name"] for r in rows) == ["BA-PC1", "BA-PC2"]

    def test_terminal_output(self, monkeypatch, capsys, export_paths):
        monkeypatch.setattr(formatter, "_color_enabled", None)
        _run(monkeypatch, "--jamf", export_paths["jamf"], "--full", "--no-color")
        out = capsys.readouterr().out
        assert "FBS-jsm2ku-2022" in out
        assert "\033[" not in out

    def test_settings_db_overlay(self, monkeypatch, capsys, export_paths, tmp_path):
        url = f"sqlite:///{tmp_path / 'settings.db'}"
        store = SettingsStore(url)
        store.set_retired("jamf-C02OLD999", True)
        store.close()

        _run(monkeypatch, "--jamf", export_paths["jamf"], "--settings-db", url, "--format", "json")
        payload = json.loads(capsys.readouterr().out)
        assert payload["summary"]["retired_devices"] == 1

    def test_device_source_required(self, monkeypatch, capsys, export_paths):
        _run(monkeypatch, "--directory", export_paths["directory"])
        assert "At least one of --jamf, --intune or --axonius is required" in capsys.readouterr().out

    def test_missing_file_reported(self, monkeypatch, capsys, tmp_path):
        _run(monkeypatch, "--jamf", str(tmp_path / "nope.csv"))
        out = capsys.readouterr().out
        assert "is not a readable file" in out

    def test_forced_color_strips_cleanly(self, monkeypatch, capsys, export_paths):
        monkeypatch.setattr(formatter, "_color_enabled", None)
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("FORCE_COLOR", "1")
        _run(monkeypatch, "--jamf", export_paths["jamf"])
        out = capsys.readouterr().out
        assert "\033[" in out
        assert "FLEET SUMMARY" in formatter.strip_ansi(out)
