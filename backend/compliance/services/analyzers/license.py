"""
License compliance analyzer.

Evaluates the already-classified bill of materials against the license
policy and the project's own license:

- policy violations (blocked licenses or risk buckets) and warnings
- compatibility verdict: copyleft or proprietary obligations flowing into a
  permissive or weak-copyleft project
- risk distribution, top licenses and license quality metrics
"""

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

from compliance.models.finding import (
    CompatibilityVerdict,
    LicenseConflict,
    Severity,
)
from compliance.models.license import LicensePolicy, RiskBucket
from compliance.models.package import NOASSERTION, BillOfMaterials, PackageRecord
from compliance.services.normalizers.license import classify_license, license_family

from .base import AnalysisContext, Analyzer

# Dependency buckets whose obligations propagate into the project
PROPAGATING_BUCKETS = {RiskBucket.STRONG_COPYLEFT, RiskBucket.PROPRIETARY}
# Project buckets that did not anticipate such obligations
EXPOSED_PROJECT_BUCKETS = {RiskBucket.PERMISSIVE, RiskBucket.WEAK_COPYLEFT}

QUALITY_WEIGHTS = {
    RiskBucket.PERMISSIVE: 100,
    RiskBucket.WEAK_COPYLEFT: 75,
    RiskBucket.STRONG_COPYLEFT: 50,
    RiskBucket.PROPRIETARY: 0,
    RiskBucket.UNKNOWN: 0,
}

TOP_LICENSE_LIMIT = 10

VIOLATION_TYPES = {"BLOCKED_LICENSE", "BLOCKED_RISK_BUCKET"}


def evaluate_compatibility(
    project_license: str, packages: Iterable[PackageRecord]
) -> CompatibilityVerdict:
    """
    Check every dependency license against the project's own license.

    The reverse direction (permissive dependency in a copyleft project) is
    never a conflict. Unclassifiable dependency licenses produce warnings.
    """
    project_license = project_license or NOASSERTION
    project_bucket = classify_license(project_license)
    conflicts: List[LicenseConflict] = []
    warnings: List[str] = []

    if project_license == NOASSERTION:
        warnings.append("Project license is not declared; compatibility cannot be fully assessed")

    for record in packages:
        bucket = RiskBucket(record.risk_bucket)
        if bucket == RiskBucket.UNKNOWN:
            warnings.append(
                f"{record.id}: license '{record.normalized_license}' could not be classified"
            )
            continue
        if bucket in PROPAGATING_BUCKETS and project_bucket in EXPOSED_PROJECT_BUCKETS:
            high = bucket == RiskBucket.STRONG_COPYLEFT and project_bucket == RiskBucket.PERMISSIVE
            conflicts.append(
                LicenseConflict(
                    package=record.id,
                    dependency_license=record.normalized_license,
                    risk_bucket=bucket.value,
                    severity=Severity.HIGH if high else Severity.MEDIUM,
                )
            )

    return CompatibilityVerdict(
        project_license=project_license,
        project_risk_bucket=project_bucket.value,
        conflicts=conflicts,
        warnings=warnings,
        can_distribute=not any(c.severity == Severity.HIGH for c in conflicts),
        compliance_status="COMPLIANT" if not conflicts else "NON_COMPLIANT",
    )


class LicenseAnalyzer(Analyzer):
    name = "license_compliance"

    async def analyze(self, bom: BillOfMaterials, context: AnalysisContext) -> Dict[str, Any]:
        result = self.evaluate(bom, context.policy)
        context.logger.info(
            f"License compliance: {result['summary']['violations']} violations, "
            f"{len(result['compatibility']['conflicts'])} conflicts"
        )
        return result

    def evaluate(self, bom: BillOfMaterials, policy: LicensePolicy) -> Dict[str, Any]:
        packages = bom.packages
        violations, warnings = self._policy_findings(packages, policy)
        verdict = evaluate_compatibility(bom.project.license, packages)

        flagged = {v["package"] for v in violations} | {w["package"] for w in warnings}
        license_counts = Counter(p.normalized_license for p in packages)

        return {
            "projectLicense": bom.project.license,
            "policyVersion": policy.version,
            "policy": policy.to_dict(),
            "summary": {
                "totalPackages": len(packages),
                "compliantPackages": sum(1 for p in packages if p.id not in flagged),
                "violations": len(violations),
                "warnings": len(warnings),
                "uniqueLicenses": len(license_counts),
            },
            "violations": violations,
            "warnings": warnings,
            "riskDistribution": self._risk_distribution(packages),
            "topLicenses": self._top_licenses(packages, license_counts),
            "qualityMetrics": self._quality_metrics(packages),
            "compatibility": verdict.to_dict(),
            "distributionRisk": self._distribution_risk(verdict, violations),
        }

    def _policy_findings(self, packages: List[PackageRecord], policy: LicensePolicy):
        violations = []
        warnings = []
        for record in packages:
            bucket = RiskBucket(record.risk_bucket)
            finding = self._policy_finding(record, bucket, policy)
            if finding is None:
                continue

            finding_type, severity, message = finding
            entry = {
                "package": record.id,
                "name": record.name,
                "version": record.version,
                "license": record.normalized_license,
                "riskBucket": bucket.value,
                "type": finding_type,
                "severity": severity,
                "message": message,
            }
            if finding_type in VIOLATION_TYPES:
                violations.append(entry)
            else:
                warnings.append(entry)
        return violations, warnings

    def _policy_finding(
        self, record: PackageRecord, bucket: RiskBucket, policy: LicensePolicy
    ) -> Optional[Tuple[str, str, str]]:
        """(type, severity, message) of the policy rule a package trips, if any."""
        license_name = record.normalized_license
        family = license_family(license_name)

        if family in policy.blocked_licenses or license_name in policy.blocked_licenses:
            return "BLOCKED_LICENSE", "HIGH", f"License {license_name} is blocked by policy"
        if bucket in policy.blocked_risk_buckets:
            return "BLOCKED_RISK_BUCKET", "HIGH", f"{bucket.value} licenses are blocked by policy"
        if family in policy.warning_licenses or license_name in policy.warning_licenses:
            return "WARNING_LICENSE", "MEDIUM", f"License {license_name} requires review"
        if bucket == RiskBucket.UNKNOWN:
            return (
                "UNKNOWN_LICENSE",
                "LOW",
                "No recognizable license information - review manually",
            )
        return None

    def _risk_distribution(self, packages: List[PackageRecord]) -> Dict[str, Any]:
        counts = Counter(RiskBucket(p.risk_bucket) for p in packages)
        total = len(packages)
        return {
            "counts": {b.value: counts.get(b, 0) for b in RiskBucket},
            "percentages": {
                b.value: round(counts.get(b, 0) / total * 100, 1) if total else 0.0
                for b in RiskBucket
            },
        }

    def _top_licenses(self, packages: List[PackageRecord], counts: Counter) -> List[Dict[str, Any]]:
        buckets = {p.normalized_license: RiskBucket(p.risk_bucket).value for p in packages}
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [
            {"license": name, "count": count, "riskBucket": buckets[name]}
            for name, count in ranked[:TOP_LICENSE_LIMIT]
        ]

    def _quality_metrics(self, packages: List[PackageRecord]) -> Dict[str, Any]:
        counts = Counter(RiskBucket(p.risk_bucket) for p in packages)
        total = len(packages)
        score = (
            round(sum(QUALITY_WEIGHTS[b] * n for b, n in counts.items()) / total)
            if total
            else 100
        )
        return {
            "excellent": counts.get(RiskBucket.PERMISSIVE, 0),
            "good": counts.get(RiskBucket.WEAK_COPYLEFT, 0),
            "fair": counts.get(RiskBucket.STRONG_COPYLEFT, 0),
            "poor": counts.get(RiskBucket.PROPRIETARY, 0) + counts.get(RiskBucket.UNKNOWN, 0),
            "qualityScore": score,
        }

    def _distribution_risk(
        self, verdict: CompatibilityVerdict, violations: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        reasons = [
            f"{c.package} ({c.dependency_license}) conflicts with project license "
            f"{verdict.project_license}"
            for c in verdict.conflicts
        ]
        reasons.extend(v["message"] + f" ({v['package']})" for v in violations)

        if not verdict.can_distribute:
            level = "HIGH"
        elif verdict.conflicts or violations:
            level = "MEDIUM"
        else:
            level = "LOW"
        return {"level": level, "canDistribute": verdict.can_distribute, "reasons": reasons}
