"""
Manifest Resolver

Locates the most authoritative dependency description of a project and
turns it into a flat list of package records. Strategies are tried in
priority order:

- package-lock: exact versions from ``package-lock.json`` (v1, v2, v3)
- package-json: ranges from ``package.json``
- requirements-txt: ``requirements.txt`` pins and ranges
- recursive-scan: nested manifests below the project root
- empty: zero packages

The first strategy yielding at least one package wins; every attempt is kept
for the strategy chain of the bill of materials.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from compliance.core.config import Settings, settings as default_settings
from compliance.core.exceptions import ManifestNotFound, ManifestParseError
from compliance.models.package import PackageRecord, ProjectInfo, StrategyAttempt
from compliance.services.versioning import PLACEHOLDER_VERSION

logger = logging.getLogger(__name__)

STRATEGY_EMPTY = "empty"

# Tarball name suffix: lodash-4.17.21.tgz, pkg-1.0.0-beta.1.tar.gz
_RESOLVED_VERSION_RE = re.compile(
    r"-(\d+\.\d+\.\d+(?:[-.][^/]+)*)\.(?:tgz|tar\.gz|zip)$"
)
_REQUIREMENT_RE = re.compile(
    r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*(?:\[[^\]]*\])?\s*"
    r"(?P<operator>===|==|>=|<=|~=|!=|>|<)?\s*(?P<spec>.*)$"
)
_DEPENDENCY_SECTIONS = (
    ("dependencies", "prod"),
    ("devDependencies", "dev"),
    ("optionalDependencies", "optional"),
)

Strategy = Callable[[Path, Settings], List[PackageRecord]]


@dataclass
class ResolutionResult:
    """Packages of the winning strategy plus the record of every attempt."""

    strategy: str
    packages: List[PackageRecord]
    project: ProjectInfo
    attempts: List[StrategyAttempt] = field(default_factory=list)

    @property
    def strategy_chain(self) -> List[str]:
        return [attempt.strategy for attempt in self.attempts]


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ManifestNotFound(str(path))
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise ManifestParseError(str(path), str(e))
    if not isinstance(data, dict):
        raise ManifestParseError(str(path), "top-level value is not an object")
    return data


def normalize_repository_url(repository: Any) -> Optional[str]:
    """
    Turn a manifest ``repository`` value into a browsable URL.

    Accepts ``{"type": "git", "url": ...}`` objects, ``git+https://`` and
    ``git://`` URLs, ``git@host:owner/repo`` and the ``github:owner/repo`` /
    ``owner/repo`` shorthands.
    """
    if isinstance(repository, dict):
        repository = repository.get("url")
    if not repository or not isinstance(repository, str):
        return None

    url = repository.strip()
    if url.startswith("git+"):
        url = url[4:]
    if url.startswith("git@"):
        host, _, path = url[4:].partition(":")
        url = f"https://{host}/{path}"
    elif url.startswith("git://"):
        url = "https://" + url[6:]
    elif url.startswith("ssh://git@"):
        url = "https://" + url[10:]
    elif url.startswith(("github:", "gitlab:", "bitbucket:")):
        host, _, path = url.partition(":")
        domain = "bitbucket.org" if host == "bitbucket" else f"{host}.com"
        url = f"https://{domain}/{path}"
    elif re.match(r"^[\w.-]+/[\w.-]+$", url):
        url = f"https://github.com/{url}"

    if url.endswith(".git"):
        url = url[:-4]
    return url.rstrip("/") or None


def _version_from_resolved(resolved: Any) -> Optional[str]:
    if not isinstance(resolved, str):
        return None
    match = _RESOLVED_VERSION_RE.search(resolved)
    return match.group(1) if match else None


def _lock_entries(lock: Dict[str, Any]) -> List[Tuple[str, Any]]:
    """Top-level entries of a lockfile, v1 ``dependencies`` preferred."""
    dependencies = lock.get("dependencies")
    if isinstance(dependencies, dict) and dependencies:
        return list(dependencies.items())

    entries = []
    packages = lock.get("packages")
    if isinstance(packages, dict):
        prefix = "node_modules/"
        for key, entry in packages.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):]
            # Nested installs (a/node_modules/b) are not top-level entries
            if "/node_modules/" in f"/{name}":
                continue
            entries.append((name, entry))
    return entries


def resolve_package_lock(directory: Path, config: Settings) -> List[PackageRecord]:
    path = directory / "package-lock.json"
    lock = _read_json(path)

    records = []
    for name, entry in _lock_entries(lock):
        if not isinstance(entry, dict):
            logger.debug(f"Skipping malformed lockfile entry {name}")
            continue
        version = entry.get("version")
        if not version or not isinstance(version, str):
            version = _version_from_resolved(entry.get("resolved")) or PLACEHOLDER_VERSION
        if entry.get("dev"):
            scope = "dev"
        elif entry.get("optional"):
            scope = "optional"
        else:
            scope = "prod"
        records.append(
            PackageRecord(
                name=name,
                version=version,
                declared_license=entry.get("license"),
                resolution_strategy="package-lock",
                ecosystem="npm",
                download_location=entry.get("resolved") if isinstance(entry.get("resolved"), str) else None,
                scope=scope,
                source_file=path.name,
            )
        )
    return records


def _manifest_dependencies(
    manifest: Dict[str, Any], path: Path, strategy: str, source_file: str
) -> List[PackageRecord]:
    records = []
    for section, scope in _DEPENDENCY_SECTIONS:
        dependencies = manifest.get(section) or {}
        if not isinstance(dependencies, dict):
            raise ManifestParseError(str(path), f"'{section}' is not an object")
        for name, spec in dependencies.items():
            records.append(
                PackageRecord(
                    name=name,
                    version=str(spec) if spec else "*",
                    resolution_strategy=strategy,
                    ecosystem="npm",
                    scope=scope,
                    source_file=source_file,
                )
            )
    return records


def resolve_package_json(directory: Path, config: Settings) -> List[PackageRecord]:
    path = directory / "package.json"
    manifest = _read_json(path)
    return _manifest_dependencies(manifest, path, "package-json", path.name)


def parse_requirements(text: str, strategy: str, source_file: str) -> List[PackageRecord]:
    """
    Parse requirements.txt content.

    ``name==1.0`` yields the exact version, other operators keep the full
    specifier (``>=2.0,<3``) as the version string, a bare name yields
    ``0.0.0``. Options, URLs, local paths and environment markers are ignored.
    """
    records = []
    for raw_line in text.splitlines():
        line = raw_line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        line = line.split(";", 1)[0].strip()
        if "://" in line or line.startswith((".", "/")):
            continue

        match = _REQUIREMENT_RE.match(line)
        if not match:
            continue
        operator = match.group("operator")
        spec = match.group("spec").replace(" ", "")
        if not operator:
            version = PLACEHOLDER_VERSION
        elif operator in ("==", "===") and "," not in spec:
            version = spec
        else:
            version = f"{operator}{spec}"

        records.append(
            PackageRecord(
                name=match.group("name"),
                version=version or PLACEHOLDER_VERSION,
                resolution_strategy=strategy,
                ecosystem="PyPI",
                source_file=source_file,
            )
        )
    return records


def resolve_requirements_txt(directory: Path, config: Settings) -> List[PackageRecord]:
    path = directory / "requirements.txt"
    if not path.is_file():
        raise ManifestNotFound(str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestParseError(str(path), str(e))
    return parse_requirements(text, "requirements-txt", path.name)


def _nested_package_records(path: Path, relative: str) -> List[PackageRecord]:
    manifest = _read_json(path)
    records = []
    name = manifest.get("name")
    if isinstance(name, str) and name:
        records.append(
            PackageRecord(
                name=name,
                version=str(manifest.get("version") or PLACEHOLDER_VERSION),
                declared_license=manifest.get("license") or manifest.get("licenses"),
                description=manifest.get("description") if isinstance(manifest.get("description"), str) else None,
                repository_url=normalize_repository_url(manifest.get("repository")),
                resolution_strategy="recursive-scan",
                ecosystem="npm",
                scope="workspace",
                source_file=relative,
            )
        )
    records.extend(_manifest_dependencies(manifest, path, "recursive-scan", relative))
    return records


def resolve_recursive_scan(directory: Path, config: Settings) -> List[PackageRecord]:
    """
    Walk the tree for nested package.json and requirements.txt files.

    Installed-dependency and VCS directories are pruned, and so is anything
    deeper than ``SCAN_MAX_DEPTH``. Manifests at the root belong to the
    earlier strategies and are not revisited.
    """
    if not directory.is_dir():
        raise ManifestNotFound(str(directory))

    skip = set(config.SCAN_SKIP_DIRS)
    found = 0
    records: List[PackageRecord] = []

    for root, dirs, files in os.walk(directory):
        root_path = Path(root)
        depth = len(root_path.relative_to(directory).parts)
        dirs[:] = sorted(d for d in dirs if d not in skip and not d.startswith("."))
        if depth >= config.SCAN_MAX_DEPTH:
            dirs[:] = []
        if depth == 0:
            continue

        for filename in ("package.json", "requirements.txt"):
            if filename not in files:
                continue
            found += 1
            path = root_path / filename
            relative = path.relative_to(directory).as_posix()
            try:
                if filename == "package.json":
                    records.extend(_nested_package_records(path, relative))
                else:
                    text = path.read_text(encoding="utf-8")
                    records.extend(parse_requirements(text, "recursive-scan", relative))
            except (ManifestParseError, OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable nested manifest {relative}: {e}")

    if not found:
        raise ManifestNotFound(f"No nested manifests below {directory}")
    return records


STRATEGIES: List[Tuple[str, Strategy]] = [
    ("package-lock", resolve_package_lock),
    ("package-json", resolve_package_json),
    ("requirements-txt", resolve_requirements_txt),
    ("recursive-scan", resolve_recursive_scan),
]


def read_project_info(directory: Path) -> ProjectInfo:
    """Project identity and declared license from the root package.json."""
    info = ProjectInfo(name=directory.resolve().name or "project")
    try:
        manifest = _read_json(directory / "package.json")
    except (ManifestNotFound, ManifestParseError):
        return info

    if isinstance(manifest.get("name"), str) and manifest["name"]:
        info.name = manifest["name"]
    if manifest.get("version"):
        info.version = str(manifest["version"])
    info.declared_license = manifest.get("license") or manifest.get("licenses")
    return info


def resolve_manifest(
    directory: Any,
    config: Optional[Settings] = None,
    log: Optional[logging.Logger] = None,
) -> ResolutionResult:
    """
    Run the strategies in order and return the first non-empty package list.

    Never raises for missing or broken manifests: those are recorded as
    ``not_found`` / ``error`` attempts and the next strategy runs.
    """
    config = config or default_settings
    log = log or logger
    directory = Path(directory)
    project = read_project_info(directory)
    attempts: List[StrategyAttempt] = []

    for name, strategy in STRATEGIES:
        try:
            packages = strategy(directory, config)
        except ManifestNotFound:
            log.debug(f"Strategy {name}: manifest not found")
            attempts.append(StrategyAttempt(strategy=name, status="not_found"))
            continue
        except (ManifestParseError, ValueError, TypeError, AttributeError) as e:
            log.warning(f"Strategy {name} produced nothing: {e}")
            attempts.append(StrategyAttempt(strategy=name, status="error", error=str(e)))
            continue

        if packages:
            log.info(f"Resolved {len(packages)} packages with strategy {name}")
            attempts.append(
                StrategyAttempt(strategy=name, status="succeeded", packages=len(packages))
            )
            return ResolutionResult(name, packages, project, attempts)

        attempts.append(StrategyAttempt(strategy=name, status="empty"))

    log.info(f"No dependency manifest found in {directory}")
    attempts.append(StrategyAttempt(strategy=STRATEGY_EMPTY, status="succeeded"))
    return ResolutionResult(STRATEGY_EMPTY, [], project, attempts)
