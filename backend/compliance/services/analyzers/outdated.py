import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from compliance.core.config import Settings
from compliance.core.http_utils import fetch_json
from compliance.models.finding import StalenessRecord, UpdateType
from compliance.models.package import BillOfMaterials, PackageRecord
from compliance.services.recommendations import update_recommendations
from compliance.services.versioning import (
    base_version,
    classify_update,
    highest_version,
    is_exact_version,
    pick_wanted,
)

from .base import AnalysisContext, Analyzer
from .purl_utils import parse_purl

UPDATE_ORDER = {UpdateType.MAJOR.value: 0, UpdateType.MINOR.value: 1, UpdateType.PATCH.value: 2}


def build_staleness_record(
    package: str,
    current: str,
    wanted: Optional[str],
    latest: Optional[str],
    ecosystem: str = "npm",
) -> Optional[StalenessRecord]:
    """Staleness record for a package, None when ``latest`` is not newer than ``current``."""
    update_type = classify_update(current, latest)
    if update_type is None:
        return None
    return StalenessRecord(
        package=package,
        current=current,
        wanted=wanted or current,
        latest=latest,
        update_type=update_type,
        breaking=update_type == UpdateType.MAJOR,
        ecosystem=ecosystem,
    )


def staleness_score(major_outdated: int, total_packages: int) -> int:
    """0-100 share of packages that are a major version behind."""
    if total_packages <= 0:
        return 0
    return min(100, round(major_outdated / total_packages * 100))


class OutdatedAnalyzer(Analyzer):
    """
    Compares installed versions with the latest releases known to deps.dev.

    ``wanted`` is the highest release still satisfying the manifest range,
    ``latest`` the registry default (or highest stable) release.
    """

    name = "outdated_packages"

    async def analyze(self, bom: BillOfMaterials, context: AnalysisContext) -> Dict[str, Any]:
        config = context.settings
        log = context.logger
        total = len(bom.packages)

        if not config.STALENESS_CHECK_ENABLED:
            log.info("Staleness check disabled")
            return self._result([], total, checked=0, failures=0, skipped_reason="disabled")

        candidates = [c for c in (self._candidate(r) for r in bom.packages) if c]
        records: List[StalenessRecord] = []
        failures = 0

        for batch in self._batches(candidates, config.REGISTRY_BATCH_SIZE):
            lookups = await asyncio.gather(
                *[self._fetch_versions(context.client, c, config, log) for c in batch]
            )
            for candidate, lookup in zip(batch, lookups):
                if lookup is None:
                    failures += 1
                    continue
                record = self._assess(candidate, *lookup)
                if record:
                    records.append(record)

        records.sort(key=lambda r: (UPDATE_ORDER[r.update_type], r.package))
        log.info(f"Staleness: {len(records)} of {len(candidates)} checked packages outdated")
        return self._result(records, total, checked=len(candidates), failures=failures)

    def _candidate(self, record: PackageRecord) -> Optional[Dict[str, Any]]:
        parsed = parse_purl(record.purl) if record.purl else None
        if not parsed or not parsed.registry_system:
            return None

        requested = record.requested_range
        if is_exact_version(record.version):
            current = record.version.lstrip("v")
        else:
            requested = requested or record.version
            current = base_version(record.version)
        if not current:
            return None

        return {
            "package": record.name,
            "name": parsed.full_name,
            "system": parsed.registry_system,
            "ecosystem": parsed.ecosystem or record.ecosystem,
            "current": current,
            "requested": requested,
        }

    async def _fetch_versions(
        self,
        client: httpx.AsyncClient,
        candidate: Dict[str, Any],
        config: Settings,
        log: logging.Logger,
    ) -> Optional[Tuple[List[str], Optional[str]]]:
        url = (
            f"{config.DEPS_DEV_API_URL.rstrip('/')}/systems/{candidate['system']}"
            f"/packages/{quote(candidate['name'], safe='')}"
        )
        data = await fetch_json(
            client, url, timeout=config.REGISTRY_TIMEOUT_SECONDS, service_name="deps.dev"
        )
        if data is None:
            log.debug(f"No deps.dev data for {candidate['name']}")
            return None
        if not isinstance(data.get("versions"), list):
            log.warning(f"Malformed deps.dev response for {candidate['name']}")
            return None

        versions = []
        default_version = None
        for entry in data["versions"]:
            version_key = entry.get("versionKey") if isinstance(entry, dict) else None
            version = version_key.get("version") if isinstance(version_key, dict) else None
            if not isinstance(version, str) or not version:
                continue
            versions.append(version)
            if entry.get("isDefault"):
                default_version = version
        if not versions:
            log.warning(f"No usable versions in deps.dev response for {candidate['name']}")
            return None
        return versions, default_version

    def _assess(
        self,
        candidate: Dict[str, Any],
        versions: List[str],
        default_version: Optional[str],
    ) -> Optional[StalenessRecord]:
        latest = default_version or highest_version(versions)
        if not latest:
            return None
        wanted = None
        if candidate["requested"]:
            wanted = pick_wanted(candidate["requested"], versions, candidate["ecosystem"])
        return build_staleness_record(
            candidate["package"], candidate["current"], wanted, latest, candidate["ecosystem"]
        )

    def _result(
        self,
        records: List[StalenessRecord],
        total: int,
        checked: int,
        failures: int,
        skipped_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        counts = {t: sum(1 for r in records if r.update_type == t) for t in UPDATE_ORDER}
        result = {
            "totalOutdated": len(records),
            "majorUpdates": counts[UpdateType.MAJOR.value],
            "minorUpdates": counts[UpdateType.MINOR.value],
            "patchUpdates": counts[UpdateType.PATCH.value],
            "breakingUpdates": sum(1 for r in records if r.breaking),
            "checkedPackages": checked,
            "lookupFailures": failures,
            "stalenessScore": staleness_score(counts[UpdateType.MAJOR.value], total),
            "packages": [r.to_dict() for r in records],
            "recommendations": update_recommendations(records),
        }
        if skipped_reason:
            result["skipped"] = True
            result["reason"] = skipped_reason
        return result
