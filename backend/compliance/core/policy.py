"""
License policy tables.

Single source for the license risk table, the alias table used to
canonicalize free-form license strings and the default release policy.
Bump ``POLICY_VERSION`` whenever any table below changes; it is stamped into
every report.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from compliance.models.license import LicensePolicy, RiskBucket

logger = logging.getLogger(__name__)

POLICY_VERSION = "2024.1"

LICENSE_RISK_TABLE: Dict[str, RiskBucket] = {
    # Permissive
    "MIT": RiskBucket.PERMISSIVE,
    "MIT-0": RiskBucket.PERMISSIVE,
    "Apache-2.0": RiskBucket.PERMISSIVE,
    "BSD-2-Clause": RiskBucket.PERMISSIVE,
    "BSD-3-Clause": RiskBucket.PERMISSIVE,
    "0BSD": RiskBucket.PERMISSIVE,
    "ISC": RiskBucket.PERMISSIVE,
    "Unlicense": RiskBucket.PERMISSIVE,
    "CC0-1.0": RiskBucket.PERMISSIVE,
    "CC-BY-4.0": RiskBucket.PERMISSIVE,
    "Zlib": RiskBucket.PERMISSIVE,
    "BSL-1.0": RiskBucket.PERMISSIVE,
    "Python-2.0": RiskBucket.PERMISSIVE,
    "PSF-2.0": RiskBucket.PERMISSIVE,
    "Artistic-2.0": RiskBucket.PERMISSIVE,
    "BlueOak-1.0.0": RiskBucket.PERMISSIVE,
    # Weak copyleft
    "LGPL-2.0": RiskBucket.WEAK_COPYLEFT,
    "LGPL-2.1": RiskBucket.WEAK_COPYLEFT,
    "LGPL-3.0": RiskBucket.WEAK_COPYLEFT,
    "MPL-1.1": RiskBucket.WEAK_COPYLEFT,
    "MPL-2.0": RiskBucket.WEAK_COPYLEFT,
    "EPL-1.0": RiskBucket.WEAK_COPYLEFT,
    "EPL-2.0": RiskBucket.WEAK_COPYLEFT,
    "CDDL-1.0": RiskBucket.WEAK_COPYLEFT,
    "CDDL-1.1": RiskBucket.WEAK_COPYLEFT,
    "CPL-1.0": RiskBucket.WEAK_COPYLEFT,
    # Strong copyleft
    "GPL-1.0": RiskBucket.STRONG_COPYLEFT,
    "GPL-2.0": RiskBucket.STRONG_COPYLEFT,
    "GPL-3.0": RiskBucket.STRONG_COPYLEFT,
    "AGPL-1.0": RiskBucket.STRONG_COPYLEFT,
    "AGPL-3.0": RiskBucket.STRONG_COPYLEFT,
    "SSPL-1.0": RiskBucket.STRONG_COPYLEFT,
    "OSL-3.0": RiskBucket.STRONG_COPYLEFT,
    # Proprietary
    "Proprietary": RiskBucket.PROPRIETARY,
    "Commercial": RiskBucket.PROPRIETARY,
    "UNLICENSED": RiskBucket.PROPRIETARY,
}

# Free-form spellings seen in manifests, keyed case-insensitively
LICENSE_ALIASES: Dict[str, str] = {
    "apache 2.0": "Apache-2.0",
    "apache 2": "Apache-2.0",
    "apache-2": "Apache-2.0",
    "apache2": "Apache-2.0",
    "apache license 2.0": "Apache-2.0",
    "apache license, version 2.0": "Apache-2.0",
    "apache software license": "Apache-2.0",
    "asl 2.0": "Apache-2.0",
    "expat": "MIT",
    "mit/x11": "MIT",
    "mit license": "MIT",
    "the mit license": "MIT",
    "bsd": "BSD-3-Clause",
    "bsd license": "BSD-3-Clause",
    "new bsd": "BSD-3-Clause",
    "bsd-3": "BSD-3-Clause",
    "simplified bsd": "BSD-2-Clause",
    "bsd-2": "BSD-2-Clause",
    "isc license": "ISC",
    "public domain": "Unlicense",
    "cc0": "CC0-1.0",
    "gpl": "GPL-3.0",
    "gplv2": "GPL-2.0",
    "gpl v2": "GPL-2.0",
    "gpl-2": "GPL-2.0",
    "gplv3": "GPL-3.0",
    "gpl v3": "GPL-3.0",
    "gpl-3": "GPL-3.0",
    "agpl": "AGPL-3.0",
    "agplv3": "AGPL-3.0",
    "lgpl": "LGPL-3.0",
    "lgplv2": "LGPL-2.1",
    "lgplv2.1": "LGPL-2.1",
    "lgplv3": "LGPL-3.0",
    "mpl": "MPL-2.0",
    "mpl 2.0": "MPL-2.0",
    "psf": "PSF-2.0",
    "python software foundation license": "PSF-2.0",
    "sspl": "SSPL-1.0",
    "unknown": "NOASSERTION",
    "none": "NOASSERTION",
}

DEFAULT_LICENSE_POLICY = LicensePolicy(
    version=POLICY_VERSION,
    blocked_licenses=frozenset({"GPL-2.0", "GPL-3.0", "AGPL-3.0", "SSPL-1.0"}),
    warning_licenses=frozenset(
        {"LGPL-2.1", "LGPL-3.0", "MPL-2.0", "EPL-1.0", "EPL-2.0", "CDDL-1.0"}
    ),
    blocked_risk_buckets=frozenset({RiskBucket.STRONG_COPYLEFT, RiskBucket.PROPRIETARY}),
)


def load_policy(path: Optional[str] = None) -> LicensePolicy:
    """
    Load a license policy from a JSON file.

    The file uses the same camelCase keys as ``LicensePolicy.to_dict()``; any
    key it omits falls back to the default policy. Without a path the
    default policy is returned.

    Raises:
        ValueError: if the file is not valid JSON or names an unknown bucket.
        OSError: if the file cannot be read.
    """
    if not path:
        return DEFAULT_LICENSE_POLICY

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"License policy {path} must be a JSON object")

    default = DEFAULT_LICENSE_POLICY
    policy = LicensePolicy(
        version=str(raw.get("version", f"{default.version}+custom")),
        blocked_licenses=frozenset(raw.get("blockedLicenses", default.blocked_licenses)),
        warning_licenses=frozenset(raw.get("warningLicenses", default.warning_licenses)),
        blocked_risk_buckets=frozenset(
            RiskBucket(b) for b in raw.get("blockedRiskBuckets", default.blocked_risk_buckets)
        ),
    )
    logger.info(f"Loaded license policy {policy.version} from {path}")
    return policy
