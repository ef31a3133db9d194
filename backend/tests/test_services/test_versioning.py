"""Tests for version parsing, range handling and update classification."""

from compliance.models.finding import UpdateType
from compliance.services.versioning import (
    base_version,
    classify_update,
    highest_version,
    is_exact_version,
    parse_version,
    pick_wanted,
)


class TestIsExactVersion:
    def test_exact(self):
        assert is_exact_version("1.2.3")
        assert is_exact_version("2.0.0-rc.1")
        assert is_exact_version("4.2")

    def test_ranges_and_placeholders(self):
        assert not is_exact_version("^1.2.3")
        assert not is_exact_version(">=2.0,<3")
        assert not is_exact_version("1.x")
        assert not is_exact_version("*")
        assert not is_exact_version("latest")
        assert not is_exact_version("0.0.0")
        assert not is_exact_version(None)


class TestBaseVersion:
    def test_caret_and_tilde(self):
        assert base_version("^4.17.21") == "4.17.21"
        assert base_version("~1.2.3") == "1.2.3"

    def test_pep440_range(self):
        assert base_version(">=2.0,<3") == "2.0"
        assert base_version("~=1.4") == "1.4"

    def test_alternatives_use_first(self):
        assert base_version("~1.2.3 || ^2") == "1.2.3"

    def test_space_after_operator(self):
        assert base_version(">= 1.0.0 < 2") == "1.0.0"

    def test_no_lower_bound(self):
        assert base_version("<2.0.0") is None
        assert base_version("*") is None
        assert base_version("latest") is None
        assert base_version(None) is None


class TestClassifyUpdate:
    def test_major(self):
        assert classify_update("1.0.0", "2.0.0") == UpdateType.MAJOR

    def test_minor(self):
        assert classify_update("1.0.0", "1.3.0") == UpdateType.MINOR

    def test_patch(self):
        assert classify_update("1.0.0", "1.0.3") == UpdateType.PATCH

    def test_not_newer(self):
        assert classify_update("2.0.0", "2.0.0") is None
        assert classify_update("2.0.0", "1.9.9") is None

    def test_unparseable(self):
        assert classify_update("banana", "2.0.0") is None

    def test_two_part_versions_coerced(self):
        assert classify_update("4.2", "5.0") == UpdateType.MAJOR
        assert parse_version("4.2") is not None


class TestCandidates:
    def test_highest_ignores_prereleases(self):
        assert highest_version(["1.0.0", "2.0.0-beta.1", "1.5.0"]) == "1.5.0"

    def test_highest_of_nothing(self):
        assert highest_version([]) is None

    def test_pick_wanted_npm(self):
        versions = ["4.17.0", "4.17.21", "5.0.0"]
        assert pick_wanted("^4.17.0", versions, "npm") == "4.17.21"

    def test_pick_wanted_pypi(self):
        versions = ["2.0.0", "2.5.1", "3.0.0"]
        assert pick_wanted(">=2.0,<3", versions, "PyPI") == "2.5.1"

    def test_pick_wanted_no_match(self):
        assert pick_wanted("^9.0.0", ["1.0.0"], "npm") is None

    def test_pick_wanted_invalid_spec(self):
        assert pick_wanted("not a range!!", ["1.0.0"], "npm") is None
