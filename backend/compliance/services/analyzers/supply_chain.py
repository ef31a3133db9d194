"""
Supply-Chain Risk Analyzer

Structural maintenance-risk signals per package:

- no resolvable source repository link
- no release for two years (abandoned) or one year (unmaintained)
- a single registry maintainer (reported, not scored)

Release dates and maintainers come from the npm registry and the PyPI JSON
API when lookups are enabled; without them only the repository signal is
available.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from compliance.core import parse_timestamp, utc_now
from compliance.core.config import Settings
from compliance.core.constants import (
    ABANDONED_THRESHOLD_DAYS,
    SUPPLY_CHAIN_LEVEL_THRESHOLDS,
    SUPPLY_CHAIN_WEIGHT_ABANDONED,
    SUPPLY_CHAIN_WEIGHT_NO_REPOSITORY,
    SUPPLY_CHAIN_WEIGHT_UNMAINTAINED,
    UNMAINTAINED_THRESHOLD_DAYS,
    bucket_for_score,
)
from compliance.core.http_utils import fetch_json
from compliance.models.package import BillOfMaterials, PackageRecord
from compliance.services.manifest_resolver import normalize_repository_url
from compliance.services.recommendations import supply_chain_recommendations

from .base import AnalysisContext, Analyzer
from .purl_utils import is_npm, is_pypi

logger = logging.getLogger(__name__)

SOURCE_URL_KEYS = ("Source", "Source Code", "Repository", "Code", "GitHub", "Homepage")


def supply_chain_score(abandoned: int, unmaintained: int, no_repository: int, total: int) -> int:
    if total <= 0:
        return 0
    weighted = (
        abandoned * SUPPLY_CHAIN_WEIGHT_ABANDONED
        + unmaintained * SUPPLY_CHAIN_WEIGHT_UNMAINTAINED
        + no_repository * SUPPLY_CHAIN_WEIGHT_NO_REPOSITORY
    )
    return min(100, round(weighted / total * 100))


def supply_chain_level(score: int) -> str:
    return bucket_for_score(score, SUPPLY_CHAIN_LEVEL_THRESHOLDS, "NONE")


def _package_risk_level(factor_count: int) -> str:
    if factor_count >= 3:
        return "CRITICAL"
    if factor_count == 2:
        return "HIGH"
    if factor_count == 1:
        return "MEDIUM"
    return "LOW"


class SupplyChainAnalyzer(Analyzer):
    name = "supply_chain"

    async def analyze(self, bom: BillOfMaterials, context: AnalysisContext) -> Dict[str, Any]:
        config = context.settings
        packages = bom.packages
        registry_info: Dict[str, Optional[Dict[str, Any]]] = {}

        if config.SUPPLY_CHAIN_LOOKUP_ENABLED:
            registry_info = await self._lookup_all(context.client, packages, config)
        else:
            context.logger.info("Supply-chain registry lookups disabled")

        abandoned: List[str] = []
        unmaintained: List[str] = []
        no_repository: List[str] = []
        single_maintainer: List[str] = []
        risky_packages = []

        for record in packages:
            info = registry_info.get(record.id) or {}
            repository = record.repository_url or info.get("repository")
            days = info.get("days_since_release")
            factors = []

            if not repository:
                no_repository.append(record.id)
                factors.append("NO_REPOSITORY")
            if days is not None and days >= ABANDONED_THRESHOLD_DAYS:
                abandoned.append(record.id)
                factors.append("ABANDONED")
            elif days is not None and days >= UNMAINTAINED_THRESHOLD_DAYS:
                unmaintained.append(record.id)
                factors.append("UNMAINTAINED")
            if info.get("maintainer_count") == 1:
                single_maintainer.append(record.id)
                factors.append("SINGLE_MAINTAINER")

            if factors:
                risky_packages.append(
                    {
                        "package": record.id,
                        "name": record.name,
                        "version": record.version,
                        "repositoryUrl": repository,
                        "lastRelease": info.get("latest_release_date"),
                        "daysSinceRelease": days,
                        "maintainerCount": info.get("maintainer_count"),
                        "riskFactors": factors,
                        "riskLevel": _package_risk_level(len(factors)),
                    }
                )

        total = len(packages)
        score = supply_chain_score(len(abandoned), len(unmaintained), len(no_repository), total)
        context.logger.info(
            f"Supply chain: score {score}, {len(abandoned)} abandoned, "
            f"{len(unmaintained)} unmaintained, {len(no_repository)} without repository"
        )
        return {
            "supplyChainScore": score,
            "riskLevel": supply_chain_level(score),
            "totalPackages": total,
            "abandonedPackages": abandoned,
            "unmaintainedPackages": unmaintained,
            "noRepositoryPackages": no_repository,
            "singleMaintainerPackages": single_maintainer,
            "riskyPackages": risky_packages,
            "registryLookups": {
                "enabled": config.SUPPLY_CHAIN_LOOKUP_ENABLED,
                "succeeded": sum(1 for v in registry_info.values() if v),
                "failed": sum(1 for v in registry_info.values() if not v),
            },
            "recommendations": supply_chain_recommendations(
                abandoned, unmaintained, no_repository, single_maintainer
            ),
        }

    async def _lookup_all(
        self,
        client: httpx.AsyncClient,
        packages: List[PackageRecord],
        config: Settings,
    ) -> Dict[str, Optional[Dict[str, Any]]]:
        results: Dict[str, Optional[Dict[str, Any]]] = {}
        lookups = [p for p in packages if p.purl and (is_npm(p.purl) or is_pypi(p.purl))]
        for batch in self._batches(lookups, config.REGISTRY_BATCH_SIZE):
            infos = await asyncio.gather(*[self._lookup(client, p, config) for p in batch])
            for record, info in zip(batch, infos):
                results[record.id] = info
        return results

    async def _lookup(
        self, client: httpx.AsyncClient, record: PackageRecord, config: Settings
    ) -> Optional[Dict[str, Any]]:
        if is_pypi(record.purl):
            return await self._check_pypi(client, record.name, config)
        return await self._check_npm(client, record.name, config)

    async def _check_npm(
        self, client: httpx.AsyncClient, name: str, config: Settings
    ) -> Optional[Dict[str, Any]]:
        """Fetch maintainer and release info from the npm registry."""
        encoded_name = name.replace("/", "%2F")
        data = await fetch_json(
            client,
            f"{config.NPM_REGISTRY_URL.rstrip('/')}/{encoded_name}",
            timeout=config.REGISTRY_TIMEOUT_SECONDS,
            service_name="npm registry",
        )
        if data is None:
            return None

        maintainers = data.get("maintainers")
        time_info = data.get("time")
        if not isinstance(time_info, dict):
            time_info = {}
        dist_tags = data.get("dist-tags")
        latest_tag = dist_tags.get("latest") if isinstance(dist_tags, dict) else None
        released = None
        if isinstance(latest_tag, str):
            released = parse_timestamp(time_info.get(latest_tag))
        released = released or parse_timestamp(time_info.get("modified"))

        return {
            "maintainer_count": len(maintainers) if isinstance(maintainers, list) else None,
            "latest_release_date": released.isoformat() if released else None,
            "days_since_release": (utc_now() - released).days if released else None,
            "repository": normalize_repository_url(data.get("repository")),
        }

    async def _check_pypi(
        self, client: httpx.AsyncClient, name: str, config: Settings
    ) -> Optional[Dict[str, Any]]:
        """Fetch release info from PyPI. PyPI does not publish maintainer lists."""
        data = await fetch_json(
            client,
            f"{config.PYPI_API_URL.rstrip('/')}/{name}/json",
            timeout=config.REGISTRY_TIMEOUT_SECONDS,
            service_name="PyPI",
        )
        if data is None:
            return None

        info = data.get("info")
        if not isinstance(info, dict):
            info = {}
        releases = data.get("releases")
        if not isinstance(releases, dict):
            releases = {}
        released = None
        for files in releases.values():
            if not isinstance(files, list):
                continue
            for f in files:
                if not isinstance(f, dict):
                    continue
                uploaded = parse_timestamp(f.get("upload_time_iso_8601") or f.get("upload_time"))
                if uploaded and (released is None or uploaded > released):
                    released = uploaded

        repository = None
        project_urls = info.get("project_urls")
        if not isinstance(project_urls, dict):
            project_urls = {}
        for key in SOURCE_URL_KEYS:
            url = project_urls.get(key)
            if not isinstance(url, str):
                continue
            if any(host in url for host in ("github.com", "gitlab.com", "bitbucket.org")):
                repository = normalize_repository_url(url)
                break

        return {
            "maintainer_count": None,
            "latest_release_date": released.isoformat() if released else None,
            "days_since_release": (utc_now() - released).days if released else None,
            "repository": repository,
        }
