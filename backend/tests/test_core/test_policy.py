"""Tests for the license policy tables and policy file loading."""

import json

import pytest

from compliance.core.policy import (
    DEFAULT_LICENSE_POLICY,
    LICENSE_ALIASES,
    LICENSE_RISK_TABLE,
    POLICY_VERSION,
    load_policy,
)
from compliance.models.license import RiskBucket


class TestPolicyTables:
    def test_aliases_point_at_known_identifiers(self):
        """Every alias resolves to a risk-table entry (or NOASSERTION)."""
        for alias, target in LICENSE_ALIASES.items():
            assert target in LICENSE_RISK_TABLE or target == "NOASSERTION", alias

    def test_alias_keys_are_lowercase(self):
        assert all(key == key.lower() for key in LICENSE_ALIASES)

    def test_no_unknown_bucket_in_table(self):
        assert RiskBucket.UNKNOWN not in LICENSE_RISK_TABLE.values()

    def test_default_policy_version(self):
        assert DEFAULT_LICENSE_POLICY.version == POLICY_VERSION


class TestLoadPolicy:
    def test_no_path_returns_default(self):
        assert load_policy(None) is DEFAULT_LICENSE_POLICY

    def test_partial_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(json.dumps({"blockedLicenses": ["LGPL-3.0"]}))

        policy = load_policy(str(path))

        assert policy.blocked_licenses == frozenset({"LGPL-3.0"})
        assert policy.warning_licenses == DEFAULT_LICENSE_POLICY.warning_licenses
        assert policy.version == f"{POLICY_VERSION}+custom"

    def test_explicit_version_and_buckets(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(
            json.dumps({"version": "acme-7", "blockedRiskBuckets": ["PROPRIETARY"]})
        )

        policy = load_policy(str(path))

        assert policy.version == "acme-7"
        assert policy.blocked_risk_buckets == frozenset({RiskBucket.PROPRIETARY})

    def test_unknown_bucket_raises(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(json.dumps({"blockedRiskBuckets": ["SCARY"]}))
        with pytest.raises(ValueError):
            load_policy(str(path))

    def test_non_object_raises(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            load_policy(str(path))

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            load_policy(str(tmp_path / "missing.json"))

    def test_policy_is_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_LICENSE_POLICY.version = "other"
