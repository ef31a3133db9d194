import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

import httpx

from compliance.core.config import Settings
from compliance.core.constants import SEVERITY_ORDER, sort_by_severity
from compliance.core.exceptions import ExternalQueryFailure
from compliance.core.http_utils import HTTPRequestError, post_json
from compliance.core.metrics import analysis_findings_total
from compliance.models.finding import Severity, VulnerabilityFinding
from compliance.models.package import BillOfMaterials, PackageRecord
from compliance.services.normalizers.utils import (
    normalize_list,
    safe_severity,
    severity_from_cvss_score,
)
from compliance.services.versioning import base_version, is_exact_version

from .base import AnalysisContext, Analyzer
from .purl_utils import ECOSYSTEM_TO_PURL_TYPE, parse_purl


def extract_severity(vuln: Dict[str, Any]) -> Severity:
    """
    Severity of one OSV record.

    Looks at, in order: a plain ``severity`` string, the ``severity`` list
    (labels or numeric CVSS scores), ``database_specific.severity`` and the
    per-affected ``ecosystem_specific`` / ``database_specific`` blocks.
    """
    raw = vuln.get("severity")
    if isinstance(raw, str):
        severity = safe_severity(raw)
        if severity != Severity.UNKNOWN:
            return severity
    elif isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, str):
                severity = safe_severity(entry)
            elif isinstance(entry, dict):
                severity = severity_from_cvss_score(entry.get("score")) or safe_severity(
                    entry.get("score") if isinstance(entry.get("score"), str) else None
                )
            else:
                continue
            if severity != Severity.UNKNOWN:
                return severity

    database_specific = vuln.get("database_specific")
    if isinstance(database_specific, dict):
        severity = safe_severity(database_specific.get("severity"))
        if severity != Severity.UNKNOWN:
            return severity

    for affected in normalize_list(vuln.get("affected")):
        if not isinstance(affected, dict):
            continue
        for key in ("ecosystem_specific", "database_specific"):
            block = affected.get(key)
            if isinstance(block, dict):
                severity = safe_severity(block.get("severity"))
                if severity != Severity.UNKNOWN:
                    return severity

    return Severity.UNKNOWN


def _fixed_version(vuln: Dict[str, Any]) -> Optional[str]:
    for affected in normalize_list(vuln.get("affected")):
        if not isinstance(affected, dict):
            continue
        for version_range in normalize_list(affected.get("ranges")):
            if not isinstance(version_range, dict):
                continue
            for event in normalize_list(version_range.get("events")):
                if isinstance(event, dict) and isinstance(event.get("fixed"), str):
                    return event["fixed"]
    return None


def _preferred_identifier(vuln_id: str, aliases: List[str]) -> str:
    for alias in aliases:
        if isinstance(alias, str) and alias.startswith("CVE-"):
            return alias
    return vuln_id


def severity_breakdown(findings: List[VulnerabilityFinding]) -> Dict[str, int]:
    """Finding counts per severity, most severe first, zero counts omitted."""
    counts = Counter(f.severity for f in findings)
    ordered = sorted(counts, key=lambda s: SEVERITY_ORDER.get(s, 0), reverse=True)
    return {str(Severity(s).value): counts[s] for s in ordered}


class OSVAnalyzer(Analyzer):
    """
    Correlates the bill of materials with the OSV vulnerability database.

    Packages are sent in sequential batches to the querybatch endpoint. A
    batch that fails contributes no findings and is reported in
    ``failedChunks``; results from the other batches are kept.
    """

    name = "osv"

    async def analyze(self, bom: BillOfMaterials, context: AnalysisContext) -> Dict[str, Any]:
        config = context.settings
        log = context.logger
        targets, skipped = self._build_targets(bom.packages)

        findings: List[VulnerabilityFinding] = []
        per_package: List[Dict[str, Any]] = []
        failed_chunks: List[Dict[str, Any]] = []
        chunks = list(self._batches(targets, config.OSV_BATCH_SIZE))

        for index, chunk in enumerate(chunks):
            try:
                results = await self._query_chunk(context.client, chunk, index, config)
                chunk_findings = self._chunk_findings(chunk, results, index)
            except ExternalQueryFailure as e:
                log.warning(f"OSV chunk {index + 1}/{len(chunks)} failed: {e}")
                failed_chunks.append(
                    {
                        "index": index,
                        "packages": [f"{t['package']}@{t['version']}" for t in chunk],
                        "reason": str(e),
                    }
                )
                continue

            for target, package_findings in chunk_findings:
                findings.extend(package_findings)
                per_package.append(
                    {
                        "package": target["package"],
                        "version": target["version"],
                        "ecosystem": target["ecosystem"],
                        "findings": [f.to_dict() for f in package_findings],
                    }
                )

        breakdown = severity_breakdown(findings)
        for severity, count in breakdown.items():
            analysis_findings_total.labels(severity=severity).inc(count)

        log.info(
            f"OSV: {len(findings)} vulnerabilities in {len(per_package)} packages "
            f"({len(chunks) - len(failed_chunks)}/{len(chunks)} chunks succeeded)"
        )
        return {
            "totalVulnerabilities": len(findings),
            "severityBreakdown": breakdown,
            "affectedPackages": len(per_package),
            "vulnerabilities": per_package,
            "findings": [f.to_dict() for f in sort_by_severity(findings)],
            "queriedPackages": len(targets),
            "skippedPackages": skipped,
            "chunks": {
                "total": len(chunks),
                "succeeded": len(chunks) - len(failed_chunks),
                "failed": len(failed_chunks),
            },
            "failedChunks": failed_chunks,
            "errors": [c["reason"] for c in failed_chunks],
        }

    def _build_targets(
        self, packages: List[PackageRecord]
    ) -> Tuple[List[Dict[str, str]], List[str]]:
        targets = []
        skipped = []
        for record in packages:
            target = query_target(record)
            if target is None:
                skipped.append(record.id)
            else:
                targets.append(target)
        return targets, skipped

    async def _query_chunk(
        self,
        client: httpx.AsyncClient,
        chunk: List[Dict[str, str]],
        index: int,
        config: Settings,
    ) -> List[Any]:
        payload = {
            "queries": [
                {
                    "package": {"ecosystem": t["ecosystem"], "name": t["package"]},
                    "version": t["version"],
                }
                for t in chunk
            ]
        }
        try:
            data = await post_json(
                client,
                config.OSV_API_URL,
                payload,
                timeout=config.OSV_TIMEOUT_SECONDS,
                service_name="OSV",
            )
        except HTTPRequestError as e:
            raise ExternalQueryFailure(str(e), chunk_index=index)

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ExternalQueryFailure("Malformed OSV response: missing results", chunk_index=index)
        if len(results) != len(chunk):
            raise ExternalQueryFailure(
                f"Malformed OSV response: {len(results)} results for {len(chunk)} queries",
                chunk_index=index,
            )
        return results

    def _chunk_findings(
        self, chunk: List[Dict[str, str]], results: List[Any], index: int
    ) -> List[Tuple[Dict[str, str], List[VulnerabilityFinding]]]:
        """Findings per target of one chunk; unparseable data fails only this chunk."""
        parsed = []
        try:
            for target, result in zip(chunk, results):
                package_findings = self._package_findings(target, result)
                if package_findings:
                    parsed.append((target, package_findings))
        except (TypeError, ValueError, AttributeError) as e:
            raise ExternalQueryFailure(f"Malformed OSV response: {e}", chunk_index=index)
        return parsed

    def _package_findings(
        self, target: Dict[str, str], result: Any
    ) -> List[VulnerabilityFinding]:
        if not isinstance(result, dict):
            return []
        findings = []
        seen = set()
        for vuln in normalize_list(result.get("vulns")):
            if not isinstance(vuln, dict):
                continue
            vuln_id = vuln.get("id")
            if not isinstance(vuln_id, str) or not vuln_id:
                vuln_id = "UNKNOWN"
            if vuln_id in seen:
                continue
            seen.add(vuln_id)
            aliases = [a for a in normalize_list(vuln.get("aliases")) if isinstance(a, str)]
            summary = vuln.get("summary")
            findings.append(
                VulnerabilityFinding(
                    package=target["package"],
                    version=target["version"],
                    identifier=_preferred_identifier(vuln_id, aliases),
                    severity=extract_severity(vuln),
                    osv_id=vuln_id,
                    aliases=aliases,
                    summary=summary if isinstance(summary, str) else None,
                    fixed_version=_fixed_version(vuln),
                )
            )
        return findings


def query_target(record: PackageRecord) -> Optional[Dict[str, str]]:
    """
    Ecosystem, name and version to query for a package.

    The purl is authoritative when present; otherwise the record's ecosystem
    is used, falling back to npm. Returns None when no concrete version can
    be derived (placeholders, wildcards, tags).
    """
    parsed = parse_purl(record.purl) if record.purl else None
    if parsed and parsed.ecosystem:
        ecosystem, name = parsed.ecosystem, parsed.full_name
    else:
        ecosystem = record.ecosystem if record.ecosystem in ECOSYSTEM_TO_PURL_TYPE else "npm"
        name = record.name

    if is_exact_version(record.version):
        version = record.version.lstrip("v")
    else:
        version = base_version(record.version)
    if not version:
        return None
    return {"package": name, "version": version, "ecosystem": ecosystem}
