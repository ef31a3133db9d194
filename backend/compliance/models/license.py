"""
License Models

Contains the risk bucket enum and the license policy consumed by the
classifier.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet


class RiskBucket(str, Enum):
    """Legal risk category of a license."""

    PERMISSIVE = "PERMISSIVE"
    WEAK_COPYLEFT = "WEAK_COPYLEFT"
    STRONG_COPYLEFT = "STRONG_COPYLEFT"
    PROPRIETARY = "PROPRIETARY"
    UNKNOWN = "UNKNOWN"


# Restrictiveness order used to pick between SPDX expression operands
RISK_BUCKET_RANK: Dict[RiskBucket, int] = {
    RiskBucket.PERMISSIVE: 0,
    RiskBucket.WEAK_COPYLEFT: 1,
    RiskBucket.STRONG_COPYLEFT: 2,
    RiskBucket.PROPRIETARY: 3,
    RiskBucket.UNKNOWN: 4,
}


@dataclass(frozen=True)
class LicensePolicy:
    """Organisation policy: which licenses block a release and which need review."""

    version: str
    blocked_licenses: FrozenSet[str] = field(default_factory=frozenset)
    warning_licenses: FrozenSet[str] = field(default_factory=frozenset)
    blocked_risk_buckets: FrozenSet[RiskBucket] = field(default_factory=frozenset)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "blockedLicenses": sorted(self.blocked_licenses),
            "warningLicenses": sorted(self.warning_licenses),
            "blockedRiskBuckets": sorted(b.value for b in self.blocked_risk_buckets),
        }


@dataclass(frozen=True)
class LicenseClassification:
    """Canonical license string and its risk bucket."""

    normalized: str
    bucket: RiskBucket
