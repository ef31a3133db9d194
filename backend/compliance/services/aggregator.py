"""
Report Synthesizer

Collects the per-analyzer sub-reports, fills in well-formed empty sections
for analyzers that failed or were skipped, and derives the overall risk
assessment, executive summary and remediation plan.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from compliance import __version__
from compliance.core import utc_now
from compliance.core.config import Settings, settings as default_settings
from compliance.core.constants import (
    LICENSE_SCORE_HIGH_CONFLICT,
    LICENSE_SCORE_VIOLATION,
    PRIORITY_THRESHOLDS,
    PROJECT_HEALTH_THRESHOLDS,
    SECURITY_SEVERITY_WEIGHTS,
    SECURITY_STATUS_THRESHOLDS,
    bucket_for_score,
)
from compliance.models.finding import RiskAssessment, RiskBreakdown
from compliance.models.license import LicensePolicy, RiskBucket
from compliance.models.package import NOASSERTION
from compliance.services.recommendations import (
    build_remediation_plan,
    license_recommendations,
    security_recommendations,
    sort_recommendations,
)
from compliance.services.sbom_builder import DATA_LICENSE, SPDX_VERSION

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_DEGRADED = "DEGRADED"
STATUS_ERROR = "ERROR"
SECURITY_STATUS_NOT_SCANNED = "UNKNOWN"

REPORT_KEYS = (
    "sbom",
    "licenseCompliance",
    "securityVulnerabilities",
    "outdatedDependencies",
    "supplyChainRisk",
    "riskAssessment",
    "reports",
    "metadata",
)

# Analyzer name -> top-level report key
REPORT_SECTIONS: Dict[str, str] = {
    "license_compliance": "licenseCompliance",
    "osv": "securityVulnerabilities",
    "outdated_packages": "outdatedDependencies",
    "supply_chain": "supplyChainRisk",
}

TOP_RISKS_LIMIT = 5
QUICK_ACTIONS_LIMIT = 3


def empty_sbom(project_name: str = "") -> Dict[str, Any]:
    return {
        "spdxVersion": SPDX_VERSION,
        "dataLicense": DATA_LICENSE,
        "SPDXID": "SPDXRef-DOCUMENT",
        "name": f"SBOM-for-{project_name}" if project_name else "SBOM",
        "documentNamespace": None,
        "documentId": None,
        "creationInfo": {"created": utc_now().isoformat(), "creators": []},
        "projectLicense": NOASSERTION,
        "packages": [],
        "metadata": {
            "strategy": "empty",
            "strategyChain": [],
            "strategyAttempts": [],
            "generationTimeMs": 0,
            "packageCount": 0,
            "enrichmentStats": {},
        },
    }


def empty_license_section() -> Dict[str, Any]:
    return {
        "projectLicense": NOASSERTION,
        "policyVersion": None,
        "policy": {},
        "summary": {
            "totalPackages": 0,
            "compliantPackages": 0,
            "violations": 0,
            "warnings": 0,
            "uniqueLicenses": 0,
        },
        "violations": [],
        "warnings": [],
        "riskDistribution": {
            "counts": {b.value: 0 for b in RiskBucket},
            "percentages": {b.value: 0.0 for b in RiskBucket},
        },
        "topLicenses": [],
        "qualityMetrics": {
            "excellent": 0,
            "good": 0,
            "fair": 0,
            "poor": 0,
            "qualityScore": 0,
        },
        "compatibility": {
            "projectLicense": NOASSERTION,
            "projectRiskBucket": RiskBucket.UNKNOWN.value,
            "conflicts": [],
            "warnings": [],
            "canDistribute": False,
            "complianceStatus": "UNKNOWN",
        },
        "distributionRisk": {"level": "UNKNOWN", "canDistribute": False, "reasons": []},
    }


def empty_security_section() -> Dict[str, Any]:
    return {
        "totalVulnerabilities": 0,
        "severityBreakdown": {},
        "affectedPackages": 0,
        "vulnerabilities": [],
        "findings": [],
        "queriedPackages": 0,
        "skippedPackages": [],
        "chunks": {"total": 0, "succeeded": 0, "failed": 0},
        "failedChunks": [],
        "errors": [],
    }


def empty_outdated_section() -> Dict[str, Any]:
    return {
        "totalOutdated": 0,
        "majorUpdates": 0,
        "minorUpdates": 0,
        "patchUpdates": 0,
        "breakingUpdates": 0,
        "checkedPackages": 0,
        "lookupFailures": 0,
        "stalenessScore": 0,
        "packages": [],
        "recommendations": [],
    }


def empty_supply_chain_section() -> Dict[str, Any]:
    return {
        "supplyChainScore": 0,
        "riskLevel": "NONE",
        "totalPackages": 0,
        "abandonedPackages": [],
        "unmaintainedPackages": [],
        "noRepositoryPackages": [],
        "singleMaintainerPackages": [],
        "riskyPackages": [],
        "registryLookups": {"enabled": False, "succeeded": 0, "failed": 0},
        "recommendations": [],
    }


EMPTY_SECTIONS = {
    "licenseCompliance": empty_license_section,
    "securityVulnerabilities": empty_security_section,
    "outdatedDependencies": empty_outdated_section,
    "supplyChainRisk": empty_supply_chain_section,
}


def calculate_security_score(severity_breakdown: Dict[str, int]) -> int:
    """
    Severity-weighted security score in [0, 100].

    The weighted sum of findings is normalized against the maximum weight per
    finding, so a project whose findings are all CRITICAL scores 100.
    """
    total = sum(severity_breakdown.values())
    if total <= 0:
        return 0
    weighted = sum(
        SECURITY_SEVERITY_WEIGHTS.get(severity, SECURITY_SEVERITY_WEIGHTS["UNKNOWN"]) * count
        for severity, count in severity_breakdown.items()
    )
    return min(100, round(weighted / (total * 100) * 100))


def vulnerability_scan_completed(section: Dict[str, Any]) -> bool:
    """False when the scan errored, was skipped or had every chunk fail."""
    if section.get("error") or section.get("skipped"):
        return False
    chunks = section.get("chunks") or {}
    return not (chunks.get("total", 0) > 0 and chunks.get("succeeded", 0) == 0)


def security_status(score: int, total_vulnerabilities: int, scanned: bool = True) -> str:
    if total_vulnerabilities == 0:
        return "SECURE" if scanned else SECURITY_STATUS_NOT_SCANNED
    return bucket_for_score(score, SECURITY_STATUS_THRESHOLDS, "SECURE")


def calculate_license_score(license_section: Dict[str, Any]) -> int:
    """100 for any HIGH conflict, 60 for other conflicts or policy violations, else 0."""
    conflicts = (license_section.get("compatibility") or {}).get("conflicts") or []
    if any(c.get("severity") == "HIGH" for c in conflicts):
        return LICENSE_SCORE_HIGH_CONFLICT
    if conflicts or license_section.get("violations"):
        return LICENSE_SCORE_VIOLATION
    return 0


def project_health(overall_score: int) -> Dict[str, Any]:
    health_score = 100 - overall_score
    return {
        "status": bucket_for_score(health_score, PROJECT_HEALTH_THRESHOLDS, "POOR"),
        "score": health_score,
    }


class ReportSynthesizer:
    """Accumulates analyzer results for one pipeline run and renders the final report."""

    def __init__(self, config: Optional[Settings] = None, log: Optional[logging.Logger] = None):
        self.settings = config or default_settings
        self.logger = log or logger
        self.sections: Dict[str, Dict[str, Any]] = {
            key: factory() for key, factory in EMPTY_SECTIONS.items()
        }
        self.stages: Dict[str, str] = {}
        self.errors: List[Dict[str, str]] = []

    def aggregate(self, analyzer_name: str, result: Dict[str, Any]):
        """
        Store an analyzer's sub-report under its report key.

        Results are laid over the empty section so every field stays present;
        an ``error`` result keeps the empty section and records the failure.
        """
        key = REPORT_SECTIONS.get(analyzer_name)
        if key is None:
            self.logger.warning(f"No report section for analyzer {analyzer_name}")
            return

        if "error" in result:
            self.stages[analyzer_name] = "Failed"
            self.errors.append({"stage": analyzer_name, "message": str(result["error"])})
            self.sections[key] = {**EMPTY_SECTIONS[key](), "error": str(result["error"])}
            return

        self.sections[key] = {**EMPTY_SECTIONS[key](), **result}
        self.stages[analyzer_name] = "Skipped" if result.get("skipped") else "Success"
        if result.get("errors"):
            for message in result["errors"]:
                self.errors.append({"stage": analyzer_name, "message": str(message)})

    def record_stage(self, name: str, succeeded: bool):
        self.stages[name] = "Success" if succeeded else "Failed"

    def security_section(self) -> Dict[str, Any]:
        section = dict(self.sections["securityVulnerabilities"])
        score = calculate_security_score(section.get("severityBreakdown") or {})
        section["securityScore"] = score
        section["securityStatus"] = security_status(
            score,
            section.get("totalVulnerabilities", 0),
            scanned=vulnerability_scan_completed(section),
        )
        return section

    def assess_risk(self) -> RiskAssessment:
        security = self.security_section()["securityScore"]
        license_score = calculate_license_score(self.sections["licenseCompliance"])
        supply_chain = self.sections["supplyChainRisk"].get("supplyChainScore", 0)

        overall = min(
            100,
            round(
                self.settings.SECURITY_WEIGHT * security
                + self.settings.LICENSE_WEIGHT * license_score
            ),
        )
        return RiskAssessment(
            overall_score=overall,
            level=bucket_for_score(overall, PRIORITY_THRESHOLDS, "LOW"),
            breakdown=RiskBreakdown(
                license=license_score, security=security, supply_chain=supply_chain
            ),
        )

    def collect_recommendations(self) -> List[Dict[str, Any]]:
        recommendations = []
        recommendations.extend(security_recommendations(self.sections["securityVulnerabilities"]))
        recommendations.extend(license_recommendations(self.sections["licenseCompliance"]))
        recommendations.extend(self.sections["outdatedDependencies"].get("recommendations") or [])
        recommendations.extend(self.sections["supplyChainRisk"].get("recommendations") or [])
        return sort_recommendations(recommendations)

    def build_reports(self, assessment: RiskAssessment, total_packages: int) -> Dict[str, Any]:
        recommendations = self.collect_recommendations()
        license_section = self.sections["licenseCompliance"]
        security = self.sections["securityVulnerabilities"]

        top_risks = [
            {
                "type": r["type"],
                "priority": r["priority"],
                "title": r["title"],
                "affectedCount": len(r["affectedPackages"]),
            }
            for r in recommendations[:TOP_RISKS_LIMIT]
        ]
        quick_actions = [
            {"title": r["title"], "action": r["steps"][0]}
            for r in recommendations
            if r["priority"] in ("CRITICAL", "HIGH") and r["steps"]
        ][:QUICK_ACTIONS_LIMIT]

        return {
            "executiveSummary": {
                "projectHealth": project_health(assessment.overall_score),
                "topRisks": top_risks,
                "quickActions": quick_actions,
                "summaryMetrics": {
                    "totalPackages": total_packages,
                    "overallRiskScore": assessment.overall_score,
                    "riskLevel": assessment.level,
                    "totalVulnerabilities": security.get("totalVulnerabilities", 0),
                    "licenseViolations": len(license_section.get("violations") or []),
                    "licenseConflicts": len(
                        (license_section.get("compatibility") or {}).get("conflicts") or []
                    ),
                    "outdatedPackages": self.sections["outdatedDependencies"].get("totalOutdated", 0),
                    "supplyChainRiskLevel": self.sections["supplyChainRisk"].get("riskLevel", "NONE"),
                    "complianceStatus": (license_section.get("compatibility") or {}).get(
                        "complianceStatus", "UNKNOWN"
                    ),
                },
            },
            "recommendations": recommendations,
            "remediationPlan": build_remediation_plan(recommendations),
        }

    def status(self) -> str:
        if any(v == "Failed" for v in self.stages.values()) or self.errors:
            return STATUS_DEGRADED
        return STATUS_SUCCESS

    def synthesize(
        self,
        sbom: Dict[str, Any],
        project_path: str,
        policy: LicensePolicy,
        started_at: float,
    ) -> Dict[str, Any]:
        """Render the final report with every top-level key present."""
        assessment = self.assess_risk()
        security = self.security_section()

        status = self.status()
        if status == STATUS_DEGRADED:
            self.logger.warning(f"Analysis of {project_path} completed with {len(self.errors)} errors")

        return {
            "sbom": sbom,
            "licenseCompliance": self.sections["licenseCompliance"],
            "securityVulnerabilities": security,
            "outdatedDependencies": self.sections["outdatedDependencies"],
            "supplyChainRisk": self.sections["supplyChainRisk"],
            "riskAssessment": assessment.to_dict(),
            "reports": self.build_reports(assessment, len(sbom.get("packages") or [])),
            "metadata": self.metadata(status, project_path, policy.version, started_at),
        }

    def metadata(
        self,
        status: str,
        project_path: str,
        policy_version: Optional[str],
        started_at: float,
    ) -> Dict[str, Any]:
        return {
            "status": status,
            "analyzedAt": utc_now().isoformat(),
            "projectPath": str(project_path),
            "durationMs": round((time.perf_counter() - started_at) * 1000),
            "analyzerVersion": __version__,
            "policyVersion": policy_version,
            "stages": dict(self.stages),
            "errors": list(self.errors),
        }

    def error_report(
        self,
        exc: BaseException,
        project_path: str,
        policy_version: Optional[str],
        started_at: float,
    ) -> Dict[str, Any]:
        """Structurally complete report for a run that could not finish."""
        assessment = RiskAssessment(
            overall_score=0,
            level="LOW",
            breakdown=RiskBreakdown(license=0, security=0, supply_chain=0),
        )
        message = str(exc) or type(exc).__name__
        self.errors.append({"stage": "pipeline", "message": message})
        report = {
            "sbom": empty_sbom(),
            "licenseCompliance": {**empty_license_section(), "error": message},
            "securityVulnerabilities": {
                **empty_security_section(),
                "securityScore": 0,
                "securityStatus": SECURITY_STATUS_NOT_SCANNED,
                "error": message,
            },
            "outdatedDependencies": {**empty_outdated_section(), "error": message},
            "supplyChainRisk": {**empty_supply_chain_section(), "error": message},
            "riskAssessment": assessment.to_dict(),
            "reports": {
                "executiveSummary": {
                    "projectHealth": {"status": "UNKNOWN", "score": None},
                    "topRisks": [],
                    "quickActions": [],
                    "summaryMetrics": {},
                },
                "recommendations": [],
                "remediationPlan": build_remediation_plan([]),
            },
            "metadata": self.metadata(STATUS_ERROR, project_path, policy_version, started_at),
            "error": {"message": message, "type": type(exc).__name__},
        }
        return report
