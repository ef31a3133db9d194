"""Tests for the package and bill-of-materials models."""

from compliance.models.license import RiskBucket
from compliance.models.package import (
    NOASSERTION,
    BillOfMaterials,
    EnrichmentStats,
    PackageRecord,
    ProjectInfo,
    StrategyAttempt,
)


class TestPackageRecord:
    def test_id_is_name_at_version(self):
        record = PackageRecord(name="lodash", version="4.17.21", resolution_strategy="package-lock")
        assert record.id == "lodash@4.17.21"

    def test_scoped_name_id(self):
        record = PackageRecord(name="@types/node", version="20.1.0", resolution_strategy="package-lock")
        assert record.id == "@types/node@20.1.0"

    def test_defaults(self):
        record = PackageRecord(name="a", version="1.0.0", resolution_strategy="package-json")
        assert record.normalized_license == NOASSERTION
        assert record.risk_bucket == RiskBucket.UNKNOWN
        assert record.ecosystem == "npm"
        assert record.scope == "prod"

    def test_dump_uses_camel_case_and_includes_id(self):
        record = PackageRecord(
            name="a",
            version="1.0.0",
            resolution_strategy="package-lock",
            declared_license={"type": "MIT"},
            repository_url="https://github.com/o/a",
        )
        data = record.model_dump(by_alias=True)
        assert data["id"] == "a@1.0.0"
        assert data["declaredLicense"] == {"type": "MIT"}
        assert data["repositoryUrl"] == "https://github.com/o/a"
        assert data["resolutionStrategy"] == "package-lock"
        assert data["riskBucket"] == "UNKNOWN"

    def test_accepts_aliases(self):
        record = PackageRecord.model_validate(
            {"name": "a", "version": "1.0.0", "resolutionStrategy": "package-lock", "riskBucket": "PERMISSIVE"}
        )
        assert record.risk_bucket == "PERMISSIVE"


class TestBillOfMaterials:
    def test_to_dict(self):
        bom = BillOfMaterials(
            document_id="doc-1",
            document_namespace="https://spdx.test/demo-doc-1",
            generated_at="2024-01-01T00:00:00+00:00",
            project=ProjectInfo(name="demo"),
            strategy="package-lock",
            strategy_chain=["package-lock"],
            strategy_attempts=[StrategyAttempt(strategy="package-lock", status="succeeded", packages=1)],
            packages=[PackageRecord(name="a", version="1.0.0", resolution_strategy="package-lock")],
            enrichment_stats=EnrichmentStats(skipped=True, reason="no cache"),
        )
        data = bom.to_dict()

        assert data["documentId"] == "doc-1"
        assert data["strategyChain"] == ["package-lock"]
        assert data["strategyAttempts"][0]["status"] == "succeeded"
        assert data["packages"][0]["id"] == "a@1.0.0"
        assert data["enrichmentStats"]["skipped"] is True
        assert data["project"]["license"] == NOASSERTION
