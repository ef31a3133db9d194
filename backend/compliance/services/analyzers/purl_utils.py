"""
PURL (Package URL) Utilities

Builds and parses the Package URLs carried by every bill-of-materials
entry. See: https://github.com/package-url/purl-spec

Format: pkg:type/namespace/name@version?qualifiers#subpath
"""

from typing import Dict, NamedTuple, Optional
from urllib.parse import quote, unquote


class ParsedPURL(NamedTuple):
    """Parsed PURL components."""

    type: str  # pypi, npm, maven, ...
    namespace: Optional[str]  # scope for npm, group for maven
    name: str
    version: Optional[str]
    qualifiers: Dict[str, str]
    subpath: Optional[str]

    @property
    def full_name(self) -> str:
        """Get the full package name including namespace."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def registry_system(self) -> Optional[str]:
        """Get the registry system name for deps.dev API."""
        return PURL_TYPE_TO_SYSTEM.get(self.type)

    @property
    def ecosystem(self) -> Optional[str]:
        """Get the OSV ecosystem name."""
        return PURL_TYPE_TO_ECOSYSTEM.get(self.type)


# Mapping from PURL types to deps.dev system names
PURL_TYPE_TO_SYSTEM = {
    "pypi": "pypi",
    "npm": "npm",
    "maven": "maven",
    "golang": "go",
    "go": "go",
    "cargo": "cargo",
    "nuget": "nuget",
}

# Mapping from PURL types to OSV ecosystem names
PURL_TYPE_TO_ECOSYSTEM = {
    "pypi": "PyPI",
    "npm": "npm",
    "maven": "Maven",
    "golang": "Go",
    "go": "Go",
    "cargo": "crates.io",
    "nuget": "NuGet",
    "gem": "RubyGems",
    "composer": "Packagist",
}

ECOSYSTEM_TO_PURL_TYPE = {
    "PyPI": "pypi",
    "npm": "npm",
    "Maven": "maven",
    "Go": "golang",
    "crates.io": "cargo",
    "NuGet": "nuget",
    "RubyGems": "gem",
    "Packagist": "composer",
}


def build_purl(ecosystem: str, name: str, version: Optional[str] = None) -> str:
    """
    Build a PURL for a package.

    npm scopes are kept as namespace with the ``@`` percent-encoded
    (``pkg:npm/%40types/node@20.1.0``); PyPI names are lower-cased as the
    purl spec requires.
    """
    purl_type = ECOSYSTEM_TO_PURL_TYPE.get(ecosystem, ecosystem.lower())
    if purl_type == "pypi":
        name = name.lower().replace("_", "-")
    path = "/".join(quote(part, safe="") for part in name.split("/"))
    purl = f"pkg:{purl_type}/{path}"
    if version:
        purl += f"@{quote(version, safe='')}"
    return purl


def parse_purl(purl: str) -> Optional[ParsedPURL]:
    """
    Parse a PURL string into its components.

    Args:
        purl: Package URL string (e.g., "pkg:pypi/requests@2.31.0")

    Returns:
        ParsedPURL namedtuple or None if parsing fails
    """
    if not purl or not purl.startswith("pkg:"):
        return None

    try:
        rest = purl[4:]

        subpath = None
        if "#" in rest:
            rest, subpath = rest.rsplit("#", 1)
            subpath = unquote(subpath)

        qualifiers = {}
        if "?" in rest:
            rest, qualifier_str = rest.rsplit("?", 1)
            for pair in qualifier_str.split("&"):
                if "=" in pair:
                    key, value = pair.split("=", 1)
                    qualifiers[unquote(key)] = unquote(value)

        version = None
        if "@" in rest and "/" not in rest.rsplit("@", 1)[1]:
            rest, version = rest.rsplit("@", 1)
            version = unquote(version)

        if "/" not in rest:
            return None

        purl_type, rest = rest.split("/", 1)
        purl_type = purl_type.lower()
        if not rest:
            return None

        namespace = None
        name = rest
        if "/" in rest:
            namespace, name = rest.rsplit("/", 1)

        return ParsedPURL(
            type=purl_type,
            namespace=unquote(namespace) if namespace else None,
            name=unquote(name),
            version=version,
            qualifiers=qualifiers,
            subpath=subpath,
        )

    except (ValueError, IndexError, AttributeError):
        return None


def get_purl_type(purl: str) -> Optional[str]:
    """Extract just the type from a PURL string."""
    if not purl or not purl.startswith("pkg:"):
        return None
    return purl[4:].split("/")[0].lower() or None


def is_pypi(purl: str) -> bool:
    """Check if PURL is a PyPI package."""
    return get_purl_type(purl) == "pypi"


def is_npm(purl: str) -> bool:
    """Check if PURL is an npm package."""
    return get_purl_type(purl) == "npm"
