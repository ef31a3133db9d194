"""
Local Metadata Enricher

Fills license, description and repository data from the project's
``node_modules`` directory and adds installed packages that the resolved
manifest did not list (transitive dependencies materialized on disk).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from compliance.core.exceptions import EnrichmentUnavailable
from compliance.models.package import EnrichmentStats, PackageRecord
from compliance.services.manifest_resolver import normalize_repository_url
from compliance.services.versioning import PLACEHOLDER_VERSION, is_exact_version

logger = logging.getLogger(__name__)

CACHE_DIRECTORY = "node_modules"


def _locate_cache(directory: Path) -> Path:
    cache = directory / CACHE_DIRECTORY
    if not cache.is_dir():
        raise EnrichmentUnavailable(f"No {CACHE_DIRECTORY} directory in {directory}")
    return cache


def _installed_manifests(cache: Path) -> Iterator[Tuple[str, Path]]:
    """Yield (package name, package.json path) for top-level and @scope/ entries."""
    for entry in sorted(cache.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        if entry.name.startswith("@"):
            for scoped in sorted(entry.iterdir()):
                if scoped.is_dir() and not scoped.name.startswith("."):
                    yield f"{entry.name}/{scoped.name}", scoped / "package.json"
        else:
            yield entry.name, entry / "package.json"


def _read_installed(path: Path, log: logging.Logger) -> Optional[Dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        log.debug(f"Ignoring unreadable installed manifest {path}: {e}")
        return None
    return data if isinstance(data, dict) else None


def _installed_metadata(manifest: Dict[str, Any]) -> Dict[str, Any]:
    description = manifest.get("description")
    return {
        "declared_license": manifest.get("license") or manifest.get("licenses"),
        "description": description if isinstance(description, str) and description else None,
        "repository_url": normalize_repository_url(manifest.get("repository")),
    }


def _apply_installed(
    record: PackageRecord, installed_version: str, metadata: Dict[str, Any]
) -> bool:
    changed = False
    for field_name, value in metadata.items():
        if value and not getattr(record, field_name):
            setattr(record, field_name, value)
            changed = True

    # Ranges and placeholders are pinned to what is installed; exact
    # versions from a lockfile stay as resolved.
    if installed_version and not is_exact_version(record.version):
        if record.version != installed_version:
            if record.requested_range is None and record.version != PLACEHOLDER_VERSION:
                record.requested_range = record.version
            record.version = installed_version
            changed = True
    return changed


def enrich_packages(
    packages: List[PackageRecord],
    directory: Any,
    log: Optional[logging.Logger] = None,
) -> EnrichmentStats:
    """
    Enrich ``packages`` in place from the local installation cache.

    A missing or unreadable cache is not an error: the stage is skipped,
    ``packages`` is left untouched and the returned stats say so.
    """
    log = log or logger
    stats = EnrichmentStats(before_enrichment=len(packages))

    try:
        cache = _locate_cache(Path(directory))
    except EnrichmentUnavailable as e:
        log.info(f"Skipping local metadata enrichment: {e}")
        stats.skipped = True
        stats.reason = str(e)
        stats.after_enrichment = len(packages)
        return stats

    stats.cache_directory = str(cache)
    try:
        installed = list(_installed_manifests(cache))
    except OSError as e:
        log.warning(f"Skipping local metadata enrichment, cannot scan {cache}: {e}")
        stats.skipped = True
        stats.reason = f"Cannot scan {cache}: {e}"
        stats.after_enrichment = len(packages)
        return stats

    by_name: Dict[str, List[PackageRecord]] = {}
    for record in packages:
        if record.ecosystem == "npm":
            by_name.setdefault(record.name, []).append(record)

    for name, manifest_path in installed:
        manifest = _read_installed(manifest_path, log)
        if manifest is None:
            continue
        installed_version = str(manifest.get("version") or "")
        metadata = _installed_metadata(manifest)

        existing = by_name.get(name)
        if existing:
            for record in existing:
                if _apply_installed(record, installed_version, metadata):
                    stats.packages_updated += 1
            continue

        if not installed_version:
            continue
        record = PackageRecord(
            name=name,
            version=installed_version,
            resolution_strategy="node-modules",
            ecosystem="npm",
            scope="transitive",
            source_file=f"{CACHE_DIRECTORY}/{name}/package.json",
            **metadata,
        )
        packages.append(record)
        by_name[name] = [record]
        stats.packages_added += 1

    stats.after_enrichment = len(packages)
    log.info(
        f"Local enrichment: {stats.packages_updated} updated, "
        f"{stats.packages_added} added from {cache}"
    )
    return stats
