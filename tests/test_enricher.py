"""
tests/test_enricher.py -- Unit tests for core/enricher.py.

Security enrichment: each waterfall strategy in isolation, strategy order,
roll-up counts and the "no match leaves the device untouched" rule.

Ownership enrichment: the device -> user export replaces provisioner and
unassigned owners, never drops a resolved primary, and keeps the
primary/secondary pair exclusive.
"""

from core.enricher import build_device_user_map, enrich_ownership, enrich_security, findings_by_host, normalize_mac
from core.findings import parse_float, parse_int
from core.models import Device
from core.pipeline import SourceBundle, run_pipeline
from inventory.models import DeviceUserRecord, ScannerAsset, ScannerFindingRow

ASSETS = [
    ScannerAsset(
        agent_id="agent-77",
        host_id="77",
        asset_name="BA-PC1",
        last_logged_on_user="ESERVICES\\abc1de",
        ipv4_address="10.0.0.7",
        risk_score="850",
        criticality_score="3",
        tags="Batten, Laptop",
        last_vuln_scan="2026-10-10",
    ),
    ScannerAsset(
        host_id="88",
        asset_name="SCAN-HOST-88",
        bios_serial="C02ABC",
        mac_address="aabb.ccdd.eeff",
    ),
]

FINDINGS = [
    ScannerFindingRow(host_id="77", qid="1", title="low", severity="3", cve_id="CVE-A", risk_score="1.0"),
    ScannerFindingRow(host_id="77", qid="2", title="crit b", severity="5", cve_id="CVE-B", risk_score="2.0"),
    ScannerFindingRow(host_id="77", qid="3", title="crit c", severity="5", cve_id="CVE-C", risk_score="9.0"),
    ScannerFindingRow(host_id="77", qid="4", title="high b", severity="4", cve_id="CVE-B"),
    ScannerFindingRow(host_id="", qid="5", title="orphan", severity="5", cve_id="CVE-Z"),
]


def _device(name: str, **fields) -> Device:
    return Device(id=f"test-{name}", name=name, source="intune", **fields)


def _enrich(device, settings, directory=None):
    [result] = enrich_security([device], ASSETS, FINDINGS, settings, directory)
    return result


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


class TestMatchingStrategies:
    def test_exact_name_is_case_insensitive(self, settings):
        result = _enrich(_device("ba-pc1"), settings)
        assert result.security.matched_by == "name"
        assert result.security.host_id == "77"

    def test_computing_id_in_device_name(self, settings):
        result = _enrich(_device("BA-abc1de-LT"), settings)
        assert result.security.matched_by == "computing_id"

    def test_partial_name(self, settings):
        result = _enrich(_device("BA-PC1.eservices.virginia.edu"), settings)
        assert result.security.matched_by == "partial"

    def test_partial_name_respects_minimum_length(self, settings):
        assert _enrich(_device("PC1"), settings).security is None

    def test_serial(self, settings):
        result = _enrich(_device("XYZ", serial_number="c02abc"), settings)
        assert result.security.matched_by == "serial"
        assert result.security.host_id == "88"

    def test_mac(self, settings):
        result = _enrich(_device("QQQQ-1", mac_address="AA-BB-CC-DD-EE-FF"), settings)
        assert result.security.matched_by == "mac"

    def test_name_beats_serial(self, settings):
        result = _enrich(_device("BA-PC1", serial_number="C02ABC"), settings)
        assert result.security.host_id == "77"

    def test_normalize_mac(self):
        assert normalize_mac("AA:BB:CC:DD:EE:FF") == "aabbccddeeff"
        assert normalize_mac("aabb.ccdd.eeff") == "aabbccddeeff"
        assert normalize_mac("AA:BB") is None
        assert normalize_mac(None) is None


class TestSecurityRollUp:
    def test_counts_and_ordering(self, settings):
        security = _enrich(_device("BA-PC1"), settings).security
        assert security.total_count == 4
        assert security.critical_high_count == 3
        assert security.critical_count == 2
        assert security.high_count == 1
        assert [f.cve_id for f in security.findings] == ["CVE-C", "CVE-B", "CVE-B", "CVE-A"]
        assert security.top_cves == ["CVE-C", "CVE-B"]

    def test_asset_fields(self, settings):
        security = _enrich(_device("BA-PC1"), settings).security
        assert security.agent_id == "agent-77"
        assert security.risk_score == 850
        assert security.criticality_score == 3
        assert security.ip_address == "10.0.0.7"
        assert security.tags == ["Batten", "Laptop"]
        assert security.last_scan is not None

    def test_asset_without_findings_has_zero_counts(self, settings):
        security = _enrich(_device("XYZ", serial_number="C02ABC"), settings).security
        assert security.total_count == 0
        assert security.top_cves == []

    def test_top_cves_capped(self, settings):
        rows = [
            ScannerFindingRow(host_id="77", qid=str(i), title="t", severity="5", cve_id=f"CVE-{i}")
            for i in range(8)
        ]
        [result] = enrich_security([_device("BA-PC1")], ASSETS, rows, settings)
        assert len(result.security.top_cves) == settings.top_cve_limit


class TestNonFiniteScores:
    """NaN and inf parse as floats but are no usable score; they count as blank."""

    def test_parse_helpers(self):
        for value in ("NaN", "nan", "inf", "-inf", "Infinity", "1e999"):
            assert parse_float(value) is None
            assert parse_int(value) is None
        assert parse_int("850.0") == 850

    def test_asset_scores(self, settings):
        assets = [ScannerAsset(host_id="1", asset_name="BA-PC1", risk_score="NaN", criticality_score="inf")]
        [result] = enrich_security([_device("BA-PC1")], assets, [], settings)
        assert result.security.matched_by == "name"
        assert result.security.risk_score is None
        assert result.security.criticality_score is None

    def test_finding_severity_and_risk(self, settings):
        rows = [
            ScannerFindingRow(host_id="1", qid="1", title="a", severity="NaN", cve_id="CVE-A", risk_score="inf"),
            ScannerFindingRow(host_id="1", qid="2", title="b", severity="inf", cve_id="CVE-B", risk_score="-inf"),
            ScannerFindingRow(host_id="1", qid="3", title="c", severity="5", cve_id="CVE-C", risk_score="NaN"),
        ]
        [first, second, third] = findings_by_host(rows, settings)["1"]
        assert (first.severity, first.risk_score) == (0, None)
        assert (second.severity, second.risk_score) == (0, None)
        assert (third.severity, third.risk_score) == (5, None)

    def test_pipeline_survives_infinite_risk(self, export_texts, settings, now):
        export_texts["scanner_assets"] = (
            "Host ID,Asset Name,TruRisk Score,Last Logged On User\n77,BA-PC1,inf,ESERVICES\\abc1de\n"
        )
        export_texts["scanner_findings"] = "QG Host ID,QID,Title,Severity,CVE ID\n77,1,OpenSSL,NaN,CVE-2024-0001\n"
        report = run_pipeline(SourceBundle.from_texts(export_texts), settings=settings, now=now)
        [pc1] = [d for d in report.devices if d.name == "BA-PC1"]
        assert pc1.security.risk_score is None
        assert pc1.security.total_count == 1
        assert pc1.security.critical_count == 0


class TestSecurityAnnotations:
    def test_other_logged_on_user_is_noted(self, settings, directory):
        device = _device("BA-PC1", owner="Jane Smith", owner_email="jsm2ku@virginia.edu")
        result = _enrich(device, settings, directory)
        assert "Scanner last logged on user: ESERVICES\\abc1de" in result.notes

    def test_owner_logged_on_is_not_noted(self, settings, directory):
        device = _device("BA-PC1", owner="Alex Brown", owner_email="abc1de@virginia.edu")
        assert _enrich(device, settings, directory).notes is None

    def test_no_match_returns_device_unchanged(self, settings):
        device = _device("ZZZZ")
        assert _enrich(device, settings) is device

    def test_input_is_not_mutated(self, settings):
        device = _device("BA-PC1", owner="Jane Smith")
        _enrich(device, settings)
        assert device.security is None
        assert device.annotations == []


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


def _user_map(*rows: tuple[str, str]) -> dict:
    return build_device_user_map(DeviceUserRecord(display_name=n, user_principal_name=u) for n, u in rows)


class TestBuildDeviceUserMap:
    def test_keys_are_upper_case(self):
        mapping = _user_map(("ba-pc1", "abc1de@virginia.edu"))
        assert "BA-PC1" in mapping

    def test_row_without_upn_does_not_replace(self):
        mapping = _user_map(("BA-PC1", "abc1de@virginia.edu"), ("ba-pc1", ""))
        assert mapping["BA-PC1"].user_principal_name == "abc1de@virginia.edu"

    def test_later_row_wins(self):
        mapping = _user_map(("BA-PC2", "abc1de@virginia.edu"), ("BA-PC2", "jsm2ku@virginia.edu"))
        assert mapping["BA-PC2"].user_principal_name == "jsm2ku@virginia.edu"


class TestEnrichOwnership:
    def _run(self, device, mapping, directory, settings):
        [result] = enrich_ownership([device], mapping, directory, settings)
        return result

    def test_provisioner_replaced_and_demoted(self, directory, settings):
        device = _device("BA-PC1", owner="Ben Hartless", owner_email="bh4hb@virginia.edu")
        result = self._run(device, _user_map(("BA-PC1", "abc1de@virginia.edu")), directory, settings)
        assert result.owner == "Alex Brown"
        assert result.owner_email == "abc1de@virginia.edu"
        assert result.additional_owner == "Ben Hartless (IT Provisioner)"
        assert any(a.source == "directory" for a in result.annotations)

    def test_unassigned_replaced(self, directory, settings):
        result = self._run(_device("BA-PC1"), _user_map(("BA-PC1", "abc1de@virginia.edu")), directory, settings)
        assert result.owner == "Alex Brown"
        assert result.additional_owner is None

    def test_resolved_primary_is_never_dropped(self, directory, settings):
        device = _device("BA-PC1", owner="Jane Smith", owner_email="jsm2ku@virginia.edu")
        result = self._run(device, _user_map(("BA-PC1", "abc1de@virginia.edu")), directory, settings)
        assert result.owner == "Jane Smith"
        assert result.additional_owner == "Alex Brown"

    def test_existing_secondary_is_kept(self, directory, settings):
        device = _device("BA-PC1", owner="Jane Smith", additional_owner="Someone Else")
        result = self._run(device, _user_map(("BA-PC1", "abc1de@virginia.edu")), directory, settings)
        assert result.additional_owner == "Someone Else"

    def test_mapped_provisioner_becomes_tagged_secondary(self, directory, settings):
        device = _device("BA-PC1", owner="Jane Smith")
        result = self._run(device, _user_map(("BA-PC1", "bh4hb@virginia.edu")), directory, settings)
        assert result.owner == "Jane Smith"
        assert result.additional_owner == "Ben Hartless (IT Provisioner)"

    def test_same_person_is_not_duplicated(self, directory, settings):
        device = _device("BA-PC1", owner="Alex Brown", owner_email="abc1de@virginia.edu")
        result = self._run(device, _user_map(("BA-PC1", "abc1de@virginia.edu")), directory, settings)
        assert result.owner == "Alex Brown"
        assert result.additional_owner is None

    def test_missing_upn_falls_back_to_name_id(self, directory, settings):
        result = self._run(_device("FBS-jsm2ku-2022"), _user_map(("FBS-jsm2ku-2022", "")), directory, settings)
        assert result.owner == "Jane Smith"

    def test_department_and_compliance(self, directory, settings):
        mapping = build_device_user_map(
            [DeviceUserRecord(display_name="BA-PC1", department="Batten", compliance_state="Noncompliant")]
        )
        result = self._run(_device("BA-PC1"), mapping, directory, settings)
        assert result.department == "Batten"
        assert "Entra compliance: Noncompliant" in result.notes

        kept = self._run(_device("BA-PC1", department="Finance"), mapping, directory, settings)
        assert kept.department == "Finance"

    def test_compliant_state_is_quiet(self, directory, settings):
        mapping = build_device_user_map([DeviceUserRecord(display_name="BA-PC1", compliance_state="Compliant")])
        assert self._run(_device("BA-PC1"), mapping, directory, settings).notes is None

    def test_rerun_does_not_duplicate_notes(self, directory, settings):
        mapping = build_device_user_map(
            [DeviceUserRecord(display_name="BA-PC1", user_principal_name="abc1de@virginia.edu", compliance_state="Error")]
        )
        once = enrich_ownership([_device("BA-PC1")], mapping, directory, settings)
        twice = enrich_ownership(once, mapping, directory, settings)
        texts = [a.text for a in twice[0].annotations]
        assert len(texts) == len(set(texts))

    def test_unmapped_device_returned_as_is(self, directory, settings):
        device = _device("BA-OTHER")
        assert enrich_ownership([device], {}, directory, settings)[0] is device
