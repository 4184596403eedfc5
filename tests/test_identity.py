"""
tests/test_identity.py -- Unit tests for core/identity.py.

Covers computing-id extraction order and bounds, user-string parsing,
directory resolution fallbacks, provisioner detection and identity
normalisation used by the ownership exclusivity checks.
"""

from core.identity import (
    Directory,
    computing_id_from_user,
    extract_computing_ids,
    identity_key,
    is_provisioner,
    is_unassigned,
    same_identity,
    tag_provisioner,
)


class TestExtractComputingIds:
    def test_prefix_id_suffix(self, settings):
        assert extract_computing_ids("FBS-jsm2ku-2022", settings) == ["jsm2ku"]

    def test_prefix_id_at_end(self, settings):
        assert extract_computing_ids("BA-ABC1DE", settings) == ["abc1de"]

    def test_email(self, settings):
        assert extract_computing_ids("contact jsm2ku@virginia.edu", settings) == ["jsm2ku"]

    def test_pattern_priority_then_dedup(self, settings):
        """Name pattern ids come before email ids; repeats collapse."""
        text = "FBS-abc1de-01 jsm2ku@virginia.edu abc1de@virginia.edu"
        assert extract_computing_ids(text, settings) == ["abc1de", "jsm2ku"]

    def test_no_id_in_lab_names_or_years(self, settings):
        assert extract_computing_ids("BA-LAB-2019", settings) == []
        assert extract_computing_ids("C02XYZ123", settings) == []

    def test_length_bounds(self, settings):
        """Ids shorter than the minimum are rejected as serial fragments."""
        assert extract_computing_ids("BA-ab1-01", settings) == []
        assert extract_computing_ids("BA-abcd1234567-01", settings) == []

    def test_empty_input(self, settings):
        assert extract_computing_ids("", settings) == []
        assert extract_computing_ids(None, settings) == []


class TestComputingIdFromUser:
    def test_domain_qualified(self, settings):
        assert computing_id_from_user("ESERVICES\\JSM2KU", settings) == "jsm2ku"

    def test_email(self, settings):
        assert computing_id_from_user("abc1de@virginia.edu", settings) == "abc1de"

    def test_bare_id(self, settings):
        assert computing_id_from_user("abc1de", settings) == "abc1de"

    def test_display_names_are_not_ids(self, settings):
        assert computing_id_from_user("Jane Smith", settings) is None
        assert computing_id_from_user("Administrator", settings) is None
        assert computing_id_from_user("", settings) is None


class TestDirectory:
    def test_lookup_is_case_insensitive(self, directory):
        assert directory.lookup("JSM2KU").name == "Jane Smith"
        assert "Jsm2ku" in directory
        assert len(directory) == 4

    def test_resolve_match(self, directory):
        resolved = directory.resolve("abc1de")
        assert resolved.name == "Alex Brown"
        assert resolved.email == "abc1de@virginia.edu"
        assert resolved.matched is True

    def test_resolve_falls_back_to_id(self, directory):
        resolved = directory.resolve("zz9zz")
        assert resolved.name == "zz9zz"
        assert resolved.email == "zz9zz@virginia.edu"
        assert resolved.matched is False

    def test_first_match_skips_unknown_ids(self, directory):
        assert directory.first_match(["zz9zz", "abc1de"])[0] == "abc1de"
        assert directory.first_match(["zz9zz"]) is None

    def test_empty_directory(self, settings):
        assert Directory(settings=settings).lookup("jsm2ku") is None

    def test_find_by_id_email_or_name(self, directory):
        assert directory.find("abc1de").name == "Alex Brown"
        assert directory.find("ABC1DE@virginia.edu").name == "Alex Brown"
        assert directory.find("Brown, Alex").computing_id == "abc1de"
        assert directory.find("Bob Jones") is None
        assert directory.find("") is None


class TestIsProvisioner:
    def test_by_id_and_email(self, settings):
        assert is_provisioner("bh4hb", settings=settings)
        assert is_provisioner("Someone", "jww8je@virginia.edu", settings)

    def test_by_display_name_either_order(self, settings):
        assert is_provisioner("Ben Hartless", settings=settings)
        assert is_provisioner("Whelchel, Jeffrey Wayne", settings=settings)

    def test_by_parenthesised_id(self, settings):
        assert is_provisioner("Whelchel, Jeffrey Wayne (jww8je)", settings=settings)

    def test_end_users_are_not_provisioners(self, settings):
        assert not is_provisioner("Jane Smith", "jsm2ku@virginia.edu", settings)
        assert not is_provisioner("", None, settings)

    def test_shared_surname_is_not_a_provisioner(self, settings):
        assert not is_provisioner("Alice Hartless", settings=settings)
        assert not is_provisioner("Whelchel, Mary", "mw3xy@virginia.edu", settings)

    def test_id_inside_other_text_is_not_a_provisioner(self, settings):
        assert not is_provisioner("bh4hb-shared lab account", settings=settings)
        assert not is_provisioner("Ben Hartless Jr", settings=settings)


class TestIdentityKey:
    def test_tag_and_order_normalisation(self):
        assert identity_key(tag_provisioner("Hartless, Ben")) == "ben hartless"
        assert identity_key("  Ben   Hartless ") == "ben hartless"

    def test_email_domain_dropped(self):
        assert identity_key("JSM2KU@virginia.edu") == "jsm2ku"

    def test_same_identity_with_directory(self, directory):
        assert same_identity("jsm2ku", "Jane Smith", directory)
        assert same_identity("Smith, Jane", "Jane Smith")
        assert not same_identity("jsm2ku", "Jane Smith")
        assert not same_identity("Jane Smith", None)

    def test_is_unassigned(self):
        assert is_unassigned("Unassigned")
        assert is_unassigned("")
        assert is_unassigned(None)
        assert not is_unassigned("Jane Smith")
