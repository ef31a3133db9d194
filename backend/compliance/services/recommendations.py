"""
Recommendation builders.

Turn analyzer results into prioritized, actionable recommendations and the
remediation plan of the final report.
"""

from collections import defaultdict
from typing import Any, Dict, List

from compliance.models.finding import StalenessRecord, UpdateType

MAX_AFFECTED = 20

PRIORITY_ORDER = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}


def _recommendation(
    type_: str,
    priority: str,
    title: str,
    description: str,
    affected: List[str],
    steps: List[str],
    **extra: Any,
) -> Dict[str, Any]:
    rec = {
        "type": type_,
        "priority": priority,
        "title": title,
        "description": description,
        "affectedPackages": sorted({a for a in affected if a})[:MAX_AFFECTED],
        "steps": steps,
    }
    rec.update(extra)
    return rec


def _update_commands(ecosystem: str, records: List[StalenessRecord]) -> List[str]:
    if ecosystem == "PyPI":
        return [f"pip install --upgrade '{r.package}=={r.latest}'" for r in records]
    names = " ".join(r.package for r in records)
    return [f"npm update {names}"]


def update_recommendations(records: List[StalenessRecord]) -> List[Dict[str, Any]]:
    """Group outdated packages into breaking and non-breaking upgrade batches."""
    if not records:
        return []

    recommendations = []
    breaking = [r for r in records if r.breaking]
    safe = [r for r in records if not r.breaking]

    if breaking:
        recommendations.append(
            _recommendation(
                "MAJOR_UPDATES",
                "MEDIUM",
                "Plan major version upgrades",
                f"{len(breaking)} packages are at least one major version behind. "
                "Major upgrades may contain breaking changes.",
                [r.package for r in breaking],
                [
                    "Read the changelog and migration guide of each package",
                    "Upgrade one package at a time and run the test suite",
                ],
                commands=[
                    f"npm install {r.package}@{r.latest}"
                    if r.ecosystem == "npm"
                    else f"pip install '{r.package}=={r.latest}'"
                    for r in breaking
                ],
            )
        )

    if safe:
        by_ecosystem: Dict[str, List[StalenessRecord]] = defaultdict(list)
        for r in safe:
            by_ecosystem[r.ecosystem].append(r)
        commands = []
        for ecosystem in sorted(by_ecosystem):
            commands.extend(_update_commands(ecosystem, by_ecosystem[ecosystem]))
        patch_only = all(r.update_type == UpdateType.PATCH for r in safe)
        recommendations.append(
            _recommendation(
                "SAFE_UPDATES",
                "LOW",
                "Apply patch updates" if patch_only else "Apply minor and patch updates",
                f"{len(safe)} packages have backwards-compatible updates available.",
                [r.package for r in safe],
                ["Apply the updates in a single batch", "Run the test suite"],
                commands=commands,
            )
        )
    return recommendations


def supply_chain_recommendations(
    abandoned: List[str],
    unmaintained: List[str],
    no_repository: List[str],
    single_maintainer: List[str],
) -> List[Dict[str, Any]]:
    recommendations = []
    if abandoned:
        recommendations.append(
            _recommendation(
                "ABANDONED_PACKAGES",
                "HIGH",
                "Replace abandoned packages",
                f"{len(abandoned)} packages have not published a release in over two years.",
                abandoned,
                [
                    "Look for maintained forks or alternatives",
                    "Budget for vendoring critical abandoned code",
                ],
            )
        )
    if unmaintained:
        recommendations.append(
            _recommendation(
                "UNMAINTAINED_PACKAGES",
                "MEDIUM",
                "Review packages without recent releases",
                f"{len(unmaintained)} packages have not published a release in over a year.",
                unmaintained,
                ["Check issue trackers for maintenance status"],
            )
        )
    if no_repository:
        recommendations.append(
            _recommendation(
                "MISSING_REPOSITORY",
                "LOW",
                "Verify packages without a source repository",
                f"{len(no_repository)} packages do not link to a source repository.",
                no_repository,
                ["Confirm provenance of each package before release"],
            )
        )
    if single_maintainer:
        recommendations.append(
            _recommendation(
                "SINGLE_MAINTAINER",
                "LOW",
                "Track single-maintainer packages",
                f"{len(single_maintainer)} packages are published by a single maintainer.",
                single_maintainer,
                ["Monitor these packages for ownership changes"],
            )
        )
    return recommendations


def license_recommendations(license_section: Dict[str, Any]) -> List[Dict[str, Any]]:
    compatibility = license_section.get("compatibility") or {}
    conflicts = compatibility.get("conflicts") or []
    violations = license_section.get("violations") or []
    warnings = license_section.get("warnings") or []
    recommendations = []

    if conflicts:
        high = any(c.get("severity") == "HIGH" for c in conflicts)
        recommendations.append(
            _recommendation(
                "LICENSE_CONFLICTS",
                "CRITICAL" if high else "HIGH",
                "Resolve license conflicts",
                f"{len(conflicts)} dependencies carry obligations incompatible with the "
                f"project license {compatibility.get('projectLicense')}.",
                [c.get("package") for c in conflicts],
                [
                    "Replace conflicting dependencies with permissively licensed alternatives",
                    "Consult legal before distributing the project",
                ],
            )
        )
    if violations:
        recommendations.append(
            _recommendation(
                "POLICY_VIOLATIONS",
                "HIGH",
                "Remove dependencies blocked by license policy",
                f"{len(violations)} dependencies use licenses blocked by policy.",
                [v.get("package") for v in violations],
                ["Replace the dependencies or request a documented policy exception"],
            )
        )
    unknown = [w.get("package") for w in warnings if w.get("type") == "UNKNOWN_LICENSE"]
    if unknown:
        recommendations.append(
            _recommendation(
                "UNKNOWN_LICENSES",
                "MEDIUM",
                "Identify missing license information",
                f"{len(unknown)} dependencies have no recognizable license.",
                unknown,
                ["Check each package's repository for a LICENSE file"],
            )
        )
    return recommendations


def security_recommendations(security_section: Dict[str, Any]) -> List[Dict[str, Any]]:
    breakdown = security_section.get("severityBreakdown") or {}
    packages = security_section.get("vulnerabilities") or []
    recommendations = []

    urgent = [
        p["package"]
        for p in packages
        if any(f.get("severity") in ("CRITICAL", "HIGH") for f in p.get("findings", []))
    ]
    if urgent:
        recommendations.append(
            _recommendation(
                "CRITICAL_VULNERABILITIES",
                "CRITICAL" if breakdown.get("CRITICAL") else "HIGH",
                "Patch critical and high severity vulnerabilities",
                f"{breakdown.get('CRITICAL', 0)} critical and {breakdown.get('HIGH', 0)} "
                "high severity vulnerabilities affect the project.",
                urgent,
                ["Upgrade to the fixed versions listed in the findings", "Rebuild and redeploy"],
            )
        )
    other = [p["package"] for p in packages if p["package"] not in urgent]
    if other:
        recommendations.append(
            _recommendation(
                "VULNERABILITIES",
                "MEDIUM",
                "Address remaining vulnerabilities",
                f"{len(other)} packages have medium, low or unrated vulnerabilities.",
                other,
                ["Schedule upgrades in the next maintenance window"],
            )
        )
    if security_section.get("failedChunks"):
        recommendations.append(
            _recommendation(
                "INCOMPLETE_SCAN",
                "MEDIUM",
                "Re-run the vulnerability scan",
                "Some vulnerability queries failed; results are incomplete.",
                [pkg for chunk in security_section["failedChunks"] for pkg in chunk.get("packages", [])],
                ["Re-run the analysis once the vulnerability database is reachable"],
            )
        )
    return recommendations


def sort_recommendations(recommendations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(recommendations, key=lambda r: PRIORITY_ORDER.get(r["priority"], 99))


def build_remediation_plan(recommendations: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Bucket recommendations by priority and into an action timeline."""
    ordered = sort_recommendations(recommendations)
    high = [r for r in ordered if r["priority"] in ("CRITICAL", "HIGH")]
    medium = [r for r in ordered if r["priority"] == "MEDIUM"]
    low = [r for r in ordered if r["priority"] == "LOW"]
    return {
        "highPriority": high,
        "mediumPriority": medium,
        "lowPriority": low,
        "timeline": {
            "immediate": [r["title"] for r in high],
            "shortTerm": [r["title"] for r in medium],
            "longTerm": [r["title"] for r in low],
        },
    }
