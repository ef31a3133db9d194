"""Tests for bill-of-materials construction and SPDX rendering."""

import uuid

from compliance.models.license import RiskBucket
from compliance.models.package import NOASSERTION, ProjectInfo
from compliance.services.manifest_resolver import ResolutionResult, resolve_manifest
from compliance.services.sbom_builder import SPDX_VERSION, build_bom, deduplicate, to_spdx
from tests.mocks.projects import make_bom, make_record


class TestDeduplicate:
    def test_same_id_merges(self):
        first = make_record("a", "1.0.0", license=None)
        second = make_record("a", "1.0.0", license="MIT", description="from cache")

        merged = deduplicate([first, second])

        assert len(merged) == 1
        assert merged[0] is first
        assert merged[0].declared_license == "MIT"
        assert merged[0].description == "from cache"

    def test_different_versions_are_kept(self):
        merged = deduplicate([make_record("a", "1.0.0"), make_record("a", "2.0.0")])
        assert [p.id for p in merged] == ["a@1.0.0", "a@2.0.0"]

    def test_empty_metadata_does_not_overwrite(self):
        first = make_record("a", "1.0.0", license="MIT")
        merged = deduplicate([first, make_record("a", "1.0.0", license=None)])
        assert merged[0].declared_license == "MIT"


class TestBuildBom:
    def test_lockfile_entry_classified(self, make_project, offline_settings):
        root = make_project(
            {"package-lock.json": {"dependencies": {"foo": {"version": "1.0.0", "license": "MIT"}}}}
        )
        bom = build_bom(resolve_manifest(root, offline_settings), config=offline_settings)

        assert [p.id for p in bom.packages] == ["foo@1.0.0"]
        assert bom.packages[0].risk_bucket == RiskBucket.PERMISSIVE
        assert bom.packages[0].normalized_license == "MIT"
        assert bom.packages[0].purl == "pkg:npm/foo@1.0.0"

    def test_unknown_license_never_null(self):
        bom = make_bom([make_record("odd", "1.0.0", license="Some Custom Thing")])
        record = bom.packages[0]
        assert record.risk_bucket == RiskBucket.UNKNOWN
        assert record.normalized_license == "Some Custom Thing"

    def test_absent_license_is_noassertion(self):
        bom = make_bom([make_record("odd", "1.0.0", license=None)])
        assert bom.packages[0].normalized_license == NOASSERTION
        assert bom.packages[0].risk_bucket == RiskBucket.UNKNOWN

    def test_range_version_has_versionless_purl(self):
        bom = make_bom([make_record("express", "^4.18.0")])
        assert bom.packages[0].purl == "pkg:npm/express"

    def test_document_metadata(self):
        bom = make_bom([make_record("a")], project_name="@acme/web")

        uuid.UUID(bom.document_id)
        assert bom.document_namespace.endswith(f"acme-web-{bom.document_id}")
        assert bom.project.license == "MIT"
        assert bom.generation_time_ms >= 0
        assert bom.enrichment_stats.skipped is True

    def test_duplicates_merged(self):
        bom = make_bom([make_record("a"), make_record("a"), make_record("b")])
        assert [p.id for p in bom.packages] == ["a@1.0.0", "b@1.0.0"]

    def test_empty_resolution(self):
        resolution = ResolutionResult(strategy="empty", packages=[], project=ProjectInfo(name="x"))
        bom = build_bom(resolution)
        assert bom.packages == []
        assert bom.strategy == "empty"
        assert bom.project.license == NOASSERTION


class TestToSpdx:
    def test_document_shape(self):
        bom = make_bom([make_record("a", "1.0.0"), make_record("b", "^2.0.0", license=None)])
        doc = to_spdx(bom)

        assert doc["spdxVersion"] == SPDX_VERSION
        assert doc["documentId"] == bom.document_id
        assert doc["metadata"]["packageCount"] == 2
        assert doc["metadata"]["strategy"] == "package-lock"

        a, b = doc["packages"]
        assert a["id"] == "a@1.0.0"
        assert a["licenseConcluded"] == "MIT"
        assert a["riskBucket"] == "PERMISSIVE"
        assert a["externalRefs"][0]["referenceLocator"] == "pkg:npm/a@1.0.0"
        assert b["licenseConcluded"] == NOASSERTION
        assert b["riskBucket"] == "UNKNOWN"

    def test_spdx_ids_unique(self):
        bom = make_bom([make_record("@s/a", "1.0.0"), make_record("s-a", "1.0.0")])
        ids = [p["SPDXID"] for p in to_spdx(bom)["packages"]]
        assert len(ids) == len(set(ids))
        assert all(i.startswith("SPDXRef-Package-") for i in ids)
