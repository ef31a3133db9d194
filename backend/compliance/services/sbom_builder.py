"""
Bill-of-Materials Builder

Wraps the resolved and enriched package list into the canonical bill of
materials: packages de-duplicated by id, licenses normalized and classified
once, purls attached, document metadata generated. ``to_spdx`` renders the
SPDX-2.3 style document embedded in the report.
"""

import logging
import re
import time
import uuid
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from compliance.core import utc_now
from compliance.core.config import Settings, settings as default_settings
from compliance.core.metrics import analysis_packages_resolved_total
from compliance.models.license import RiskBucket
from compliance.models.package import (
    NOASSERTION,
    BillOfMaterials,
    EnrichmentStats,
    PackageRecord,
)
from compliance.services.analyzers.purl_utils import build_purl
from compliance.services.manifest_resolver import ResolutionResult
from compliance.services.normalizers.license import normalize_license
from compliance.services.versioning import is_exact_version

logger = logging.getLogger(__name__)

SPDX_VERSION = "SPDX-2.3"
DATA_LICENSE = "CC0-1.0"

# Metadata fields where the later (enriched) non-empty value wins on merge
MERGED_FIELDS = ("declared_license", "description", "repository_url", "download_location")

_SPDX_ID_RE = re.compile(r"[^A-Za-z0-9.-]")


def deduplicate(packages: List[PackageRecord]) -> List[PackageRecord]:
    """
    Merge records sharing an id.

    The first record keeps its identity, strategy and position; metadata
    from later duplicates overwrites it when non-empty.
    """
    merged: "OrderedDict[str, PackageRecord]" = OrderedDict()
    for record in packages:
        existing = merged.get(record.id)
        if existing is None:
            merged[record.id] = record
            continue
        for field_name in MERGED_FIELDS:
            value = getattr(record, field_name)
            if value:
                setattr(existing, field_name, value)
    return list(merged.values())


def _classify(record: PackageRecord) -> None:
    classification = normalize_license(record.declared_license)
    record.normalized_license = classification.normalized
    record.risk_bucket = classification.bucket.value
    if not record.purl:
        version = record.version if is_exact_version(record.version) else None
        record.purl = build_purl(record.ecosystem, record.name, version)


def _namespace_slug(name: str) -> str:
    return _SPDX_ID_RE.sub("-", name).strip("-") or "project"


def build_bom(
    resolution: ResolutionResult,
    enrichment_stats: Optional[EnrichmentStats] = None,
    started_at: Optional[float] = None,
    config: Optional[Settings] = None,
    log: Optional[logging.Logger] = None,
) -> BillOfMaterials:
    """
    Assemble the canonical bill of materials.

    Args:
        resolution: Resolver output, already enriched in place
        enrichment_stats: Stats returned by the enricher
        started_at: ``time.perf_counter()`` value when resolution began
        config: Settings override
        log: Injected logger
    """
    config = config or default_settings
    log = log or logger
    started_at = started_at if started_at is not None else time.perf_counter()

    packages = deduplicate(resolution.packages)
    for record in packages:
        _classify(record)

    project = resolution.project.model_copy()
    project.license = normalize_license(project.declared_license).normalized

    document_id = str(uuid.uuid4())
    bom = BillOfMaterials(
        document_id=document_id,
        document_namespace=(
            f"{config.DOCUMENT_NAMESPACE_BASE.rstrip('/')}/"
            f"{_namespace_slug(project.name)}-{document_id}"
        ),
        generated_at=utc_now().isoformat(),
        project=project,
        strategy=resolution.strategy,
        strategy_chain=resolution.strategy_chain,
        strategy_attempts=resolution.attempts,
        packages=packages,
        enrichment_stats=enrichment_stats or EnrichmentStats(
            skipped=True,
            reason="enrichment not run",
            before_enrichment=len(resolution.packages),
            after_enrichment=len(resolution.packages),
        ),
        generation_time_ms=int((time.perf_counter() - started_at) * 1000),
    )

    analysis_packages_resolved_total.labels(strategy=bom.strategy).inc(len(packages))
    duplicates = len(resolution.packages) - len(packages)
    log.info(
        f"Built bill of materials for {project.name}: {len(packages)} packages "
        f"({duplicates} duplicates merged, strategy {bom.strategy})"
    )
    return bom


def _spdx_package(record: PackageRecord, spdx_id: str) -> Dict[str, Any]:
    known = record.risk_bucket != RiskBucket.UNKNOWN
    package = {
        "SPDXID": spdx_id,
        "name": record.name,
        "versionInfo": record.version,
        "downloadLocation": record.download_location or NOASSERTION,
        "filesAnalyzed": False,
        "licenseConcluded": record.normalized_license if known else NOASSERTION,
        "licenseDeclared": record.normalized_license,
        "copyrightText": NOASSERTION,
        "externalRefs": [],
        # Analysis annotations
        "id": record.id,
        "riskBucket": record.risk_bucket,
        "resolutionStrategy": record.resolution_strategy,
        "ecosystem": record.ecosystem,
        "scope": record.scope,
    }
    if record.description:
        package["description"] = record.description
    if record.repository_url:
        package["repositoryUrl"] = record.repository_url
    if record.requested_range:
        package["requestedRange"] = record.requested_range
    if record.purl:
        package["externalRefs"].append(
            {
                "referenceCategory": "PACKAGE-MANAGER",
                "referenceType": "purl",
                "referenceLocator": record.purl,
            }
        )
    return package


def to_spdx(bom: BillOfMaterials, config: Optional[Settings] = None) -> Dict[str, Any]:
    """Render the bill of materials as an SPDX-2.3 style document."""
    config = config or default_settings

    packages = []
    seen_ids = set()
    for record in bom.packages:
        spdx_id = "SPDXRef-Package-" + _SPDX_ID_RE.sub("-", f"{record.name}-{record.version}")
        candidate, suffix = spdx_id, 1
        while candidate in seen_ids:
            suffix += 1
            candidate = f"{spdx_id}-{suffix}"
        seen_ids.add(candidate)
        packages.append(_spdx_package(record, candidate))

    return {
        "spdxVersion": SPDX_VERSION,
        "dataLicense": DATA_LICENSE,
        "SPDXID": "SPDXRef-DOCUMENT",
        "name": f"SBOM-for-{bom.project.name}",
        "documentNamespace": bom.document_namespace,
        "documentId": bom.document_id,
        "creationInfo": {
            "created": bom.generated_at,
            "creators": [config.SBOM_CREATOR],
        },
        "projectLicense": bom.project.license,
        "packages": packages,
        "metadata": {
            "strategy": bom.strategy,
            "strategyChain": bom.strategy_chain,
            "strategyAttempts": [a.model_dump(by_alias=True) for a in bom.strategy_attempts],
            "generationTimeMs": bom.generation_time_ms,
            "packageCount": len(bom.packages),
            "enrichmentStats": bom.enrichment_stats.model_dump(by_alias=True),
        },
    }
