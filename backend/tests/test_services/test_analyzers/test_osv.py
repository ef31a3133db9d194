"""Tests for the OSV vulnerability analyzer."""

import asyncio
from unittest.mock import patch

import httpx

from compliance.core.config import Settings
from compliance.models.finding import Severity
from compliance.services.analyzers.osv import OSVAnalyzer, extract_severity, query_target
from tests.mocks.projects import make_bom, make_context, make_record
from tests.mocks.registries import make_client, osv_handler


def _vuln(vuln_id, severity=None, **kwargs):
    vuln = {"id": vuln_id, **kwargs}
    if severity:
        vuln["database_specific"] = {"severity": severity}
    return vuln


class TestExtractSeverity:
    def test_database_specific_label(self):
        assert extract_severity(_vuln("GHSA-1", "MODERATE")) == Severity.MEDIUM

    def test_numeric_cvss_score(self):
        vuln = {"id": "X", "severity": [{"type": "CVSS_V3", "score": "9.8"}]}
        assert extract_severity(vuln) == Severity.CRITICAL

    def test_vector_falls_through_to_database_specific(self):
        vuln = {
            "id": "X",
            "severity": [{"type": "CVSS_V3", "score": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"}],
            "database_specific": {"severity": "HIGH"},
        }
        assert extract_severity(vuln) == Severity.HIGH

    def test_plain_string(self):
        assert extract_severity({"id": "X", "severity": "high"}) == Severity.HIGH

    def test_affected_ecosystem_specific(self):
        vuln = {"id": "X", "affected": [{"ecosystem_specific": {"severity": "LOW"}}]}
        assert extract_severity(vuln) == Severity.LOW

    def test_missing_severity_is_unknown(self):
        assert extract_severity({"id": "X"}) == Severity.UNKNOWN


class TestQueryTarget:
    def test_exact_version(self):
        target = query_target(make_record("lodash", "4.17.21"))
        assert target == {"package": "lodash", "version": "4.17.21", "ecosystem": "npm"}

    def test_range_queried_at_lower_bound(self):
        assert query_target(make_record("lodash", "^4.17.0"))["version"] == "4.17.0"

    def test_placeholder_skipped(self):
        assert query_target(make_record("lodash", "0.0.0")) is None

    def test_tag_skipped(self):
        assert query_target(make_record("lodash", "latest")) is None

    def test_purl_is_authoritative(self):
        record = make_record("Django", "4.2.0", ecosystem="PyPI", purl="pkg:pypi/django@4.2.0")
        assert query_target(record) == {"package": "django", "version": "4.2.0", "ecosystem": "PyPI"}

    def test_scoped_npm_from_purl(self):
        bom = make_bom([make_record("@types/node", "20.1.0")])
        assert query_target(bom.packages[0])["package"] == "@types/node"


class TestOSVAnalyzer:
    def setup_method(self):
        self.analyzer = OSVAnalyzer()

    def _run(self, bom, handler, settings=None):
        context = make_context(client=make_client(handler), settings=settings)
        return asyncio.run(self.analyzer.analyze(bom, context))

    def test_findings_per_severity(self):
        bom = make_bom([make_record("pkg-a"), make_record("pkg-b")])
        handler = osv_handler(
            {"pkg-a": [_vuln("GHSA-high", "HIGH"), _vuln("GHSA-moderate", "MODERATE")]}
        )

        result = self._run(bom, handler)

        assert result["totalVulnerabilities"] == 2
        assert result["severityBreakdown"] == {"HIGH": 1, "MEDIUM": 1}
        assert result["affectedPackages"] == 1
        assert result["vulnerabilities"][0]["package"] == "pkg-a"
        assert result["chunks"] == {"total": 1, "succeeded": 1, "failed": 0}
        assert result["errors"] == []

    def test_findings_sorted_most_severe_first(self):
        bom = make_bom([make_record("pkg-a")])
        handler = osv_handler(
            {"pkg-a": [_vuln("GHSA-low", "LOW"), _vuln("GHSA-crit", "CRITICAL")]}
        )

        result = self._run(bom, handler)

        assert [f["severity"] for f in result["findings"]] == ["CRITICAL", "LOW"]

    def test_cve_alias_preferred(self):
        bom = make_bom([make_record("pkg-a")])
        vuln = _vuln(
            "GHSA-aaaa",
            "HIGH",
            aliases=["CVE-2024-1234"],
            summary="Prototype pollution",
            affected=[{"ranges": [{"events": [{"introduced": "0"}, {"fixed": "1.0.1"}]}]}],
        )

        result = self._run(bom, osv_handler({"pkg-a": [vuln]}))

        finding = result["findings"][0]
        assert finding["identifier"] == "CVE-2024-1234"
        assert finding["osvId"] == "GHSA-aaaa"
        assert finding["fixedVersion"] == "1.0.1"
        assert finding["summary"] == "Prototype pollution"

    def test_duplicate_vuln_ids_counted_once(self):
        bom = make_bom([make_record("pkg-a")])
        handler = osv_handler({"pkg-a": [_vuln("GHSA-1", "LOW"), _vuln("GHSA-1", "LOW")]})

        result = self._run(bom, handler)

        assert result["totalVulnerabilities"] == 1

    def test_no_vulnerabilities(self):
        bom = make_bom([make_record("pkg-a"), make_record("pkg-b")])

        result = self._run(bom, osv_handler())

        assert result["totalVulnerabilities"] == 0
        assert result["severityBreakdown"] == {}
        assert result["vulnerabilities"] == []

    def test_failed_chunk_keeps_other_results(self):
        bom = make_bom([make_record("pkg-a"), make_record("pkg-b"), make_record("pkg-c")])
        calls = []
        handler = osv_handler(
            {"pkg-a": [_vuln("GHSA-1", "HIGH")], "pkg-b": [_vuln("GHSA-2", "CRITICAL")]},
            fail_packages={"pkg-b"},
            calls=calls,
        )

        result = self._run(bom, handler, settings=Settings(OSV_BATCH_SIZE=1))

        assert len(calls) == 3
        assert result["chunks"] == {"total": 3, "succeeded": 2, "failed": 1}
        assert result["failedChunks"][0]["index"] == 1
        assert result["failedChunks"][0]["packages"] == ["pkg-b@1.0.0"]
        assert result["severityBreakdown"] == {"HIGH": 1}
        assert len(result["errors"]) == 1

    def test_malformed_vuln_fields_do_not_drop_other_chunks(self):
        bom = make_bom([make_record("pkg-a"), make_record("pkg-b")])
        broken = {"id": ["GHSA-2"], "summary": 42, "affected": [{"ranges": ["bad"]}]}
        handler = osv_handler({"pkg-a": [_vuln("GHSA-1", "HIGH")], "pkg-b": [broken]})

        result = self._run(bom, handler, settings=Settings(OSV_BATCH_SIZE=1))

        assert result["chunks"] == {"total": 2, "succeeded": 2, "failed": 0}
        assert result["totalVulnerabilities"] == 2
        assert result["severityBreakdown"]["HIGH"] == 1
        broken_finding = result["vulnerabilities"][1]["findings"][0]
        assert broken_finding["osvId"] == "UNKNOWN"
        assert broken_finding["summary"] is None
        assert broken_finding["fixedVersion"] is None

    def test_unparseable_chunk_fails_only_that_chunk(self):
        bom = make_bom([make_record("pkg-a"), make_record("pkg-b")])
        handler = osv_handler({"pkg-a": [_vuln("GHSA-1", "HIGH")], "pkg-b": [_vuln("GHSA-2", "LOW")]})
        parse = self.analyzer._package_findings

        def flaky_parse(target, result):
            if target["package"] == "pkg-b":
                raise ValueError("unexpected vuln shape")
            return parse(target, result)

        with patch.object(self.analyzer, "_package_findings", side_effect=flaky_parse):
            result = self._run(bom, handler, settings=Settings(OSV_BATCH_SIZE=1))

        assert result["chunks"] == {"total": 2, "succeeded": 1, "failed": 1}
        assert result["failedChunks"][0]["packages"] == ["pkg-b@1.0.0"]
        assert result["severityBreakdown"] == {"HIGH": 1}
        assert "Malformed" in result["errors"][0]

    def test_batches_respect_batch_size(self):
        bom = make_bom([make_record(f"pkg-{i}") for i in range(5)])
        calls = []

        self._run(bom, osv_handler(calls=calls), settings=Settings(OSV_BATCH_SIZE=2))

        assert [len(c["queries"]) for c in calls] == [2, 2, 1]

    def test_result_count_mismatch_fails_chunk(self):
        bom = make_bom([make_record("pkg-a")])

        def handler(request):
            return httpx.Response(200, json={"results": []})

        result = self._run(bom, handler)

        assert result["chunks"]["failed"] == 1
        assert "Malformed" in result["errors"][0]

    def test_unqueryable_packages_skipped_without_request(self):
        bom = make_bom([make_record("pkg-a", "0.0.0")])

        result = asyncio.run(self.analyzer.analyze(bom, make_context()))

        assert result["skippedPackages"] == ["pkg-a@0.0.0"]
        assert result["queriedPackages"] == 0
        assert result["chunks"]["total"] == 0
