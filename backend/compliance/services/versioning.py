"""Version parsing and comparison helpers built on semantic_version."""

import re
from typing import Iterable, List, Optional

import semantic_version

from compliance.models.finding import UpdateType

PLACEHOLDER_VERSION = "0.0.0"

_EXACT_RE = re.compile(r"^v?\d+(?:\.\d+)*(?:[-+.]?[0-9A-Za-z]+(?:[.+-][0-9A-Za-z]+)*)?$")
_WILDCARD_RE = re.compile(r"(?:^|\.)[xX*](?:\.|$)")
_LOWER_BOUND_PREFIX_RE = re.compile(r"^(?:\^|~=|~|>=|==|===|=|>)?\s*")


def is_exact_version(version: Optional[str]) -> bool:
    """True for a pinned version (``1.2.3``, ``2.0.0-rc.1``, ``1.0.post1``), False for ranges."""
    if not version or version == PLACEHOLDER_VERSION:
        return False
    version = version.strip()
    return bool(_EXACT_RE.match(version)) and not _WILDCARD_RE.search(version)


def parse_version(value: Optional[str]) -> Optional[semantic_version.Version]:
    """Parse a version leniently; two-part and PEP 440 style versions are coerced."""
    if not value:
        return None
    text = value.strip().lstrip("v=")
    try:
        return semantic_version.Version(text)
    except ValueError:
        pass
    try:
        return semantic_version.Version.coerce(text)
    except ValueError:
        return None


def base_version(spec: Optional[str]) -> Optional[str]:
    """
    Lower bound of a simple range: ``^4.17.21`` -> ``4.17.21``,
    ``>=2.0,<3`` -> ``2.0``, ``~1.2.3 || ^2`` -> ``1.2.3``.

    Returns None for upper-bound-only ranges, wildcards and tags such as
    ``latest``.
    """
    if not spec:
        return None
    text = spec.strip()
    if is_exact_version(text):
        return text.lstrip("v")

    first = text.split("||", 1)[0].strip()
    first = re.sub(r"([<>=~^!]+)\s+", r"\1", first)
    first = re.split(r"[\s,]+", first, maxsplit=1)[0]
    if first.startswith(("<", "!")):
        return None
    candidate = _LOWER_BOUND_PREFIX_RE.sub("", first, count=1).lstrip("v")
    return candidate if is_exact_version(candidate) else None


def classify_update(current: Optional[str], latest: Optional[str]) -> Optional[UpdateType]:
    """
    Classify the jump from ``current`` to ``latest``.

    MAJOR when the major component differs, else MINOR when the minor
    component differs, else PATCH. None when either side does not parse or
    ``latest`` is not newer.
    """
    cur = parse_version(current)
    lat = parse_version(latest)
    if cur is None or lat is None or lat <= cur:
        return None
    if lat.major != cur.major:
        return UpdateType.MAJOR
    if lat.minor != cur.minor:
        return UpdateType.MINOR
    return UpdateType.PATCH


def _stable_versions(candidates: Iterable[str]) -> List[semantic_version.Version]:
    versions = []
    for candidate in candidates:
        parsed = parse_version(candidate)
        if parsed is not None and not parsed.prerelease:
            versions.append(parsed)
    return versions


def highest_version(candidates: Iterable[str]) -> Optional[str]:
    """Highest stable version among the candidates."""
    versions = _stable_versions(candidates)
    return str(max(versions)) if versions else None


def pick_wanted(spec: str, candidates: Iterable[str], ecosystem: str = "npm") -> Optional[str]:
    """Highest stable candidate satisfying ``spec`` (npm or PEP 440-ish syntax)."""
    try:
        if ecosystem == "npm":
            parsed_spec = semantic_version.NpmSpec(spec)
        else:
            parsed_spec = semantic_version.SimpleSpec(spec.replace(" ", ""))
    except ValueError:
        return None

    matching = [v for v in _stable_versions(candidates) if parsed_spec.match(v)]
    return str(max(matching)) if matching else None
