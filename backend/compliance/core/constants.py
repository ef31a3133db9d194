"""
Shared Constants

Centralized severity ordering, score weights and thresholds used by the
analyzers and the report synthesizer.
"""

from typing import Dict, List, Optional, Tuple

# Severity order for sorting (higher value = more severe)
SEVERITY_ORDER: Dict[str, int] = {
    "CRITICAL": 4,
    "HIGH": 3,
    "MEDIUM": 2,
    "LOW": 1,
    "UNKNOWN": 0,
}

# Severity aliases used by OSV ecosystems and advisory databases
SEVERITY_ALIASES: Dict[str, str] = {
    "MODERATE": "MEDIUM",
    "IMPORTANT": "HIGH",
    "NEGLIGIBLE": "LOW",
    "MINOR": "LOW",
    "INFO": "LOW",
    "INFORMATIONAL": "LOW",
    "NONE": "UNKNOWN",
}


def get_severity_value(severity: Optional[str]) -> int:
    """Get numeric value for severity. Higher = more severe."""
    if not severity:
        return 0
    return SEVERITY_ORDER.get(severity.upper(), 0)


def sort_by_severity(items: list, key: str = "severity", reverse: bool = True) -> list:
    """
    Sort a list of dicts by severity.

    Args:
        items: List of dicts with severity field
        key: The key containing severity value
        reverse: If True, most severe first (default)
    """
    return sorted(
        items,
        key=lambda x: get_severity_value(
            x.get(key) if isinstance(x, dict) else getattr(x, key, None)
        ),
        reverse=reverse,
    )


# Weights for the security severity score (0-100 per finding)
SECURITY_SEVERITY_WEIGHTS: Dict[str, int] = {
    "CRITICAL": 100,
    "HIGH": 75,
    "MEDIUM": 50,
    "LOW": 25,
    "UNKNOWN": 50,
}

# CVSS base score bands
CVSS_SEVERITY_BANDS: List[Tuple[float, str]] = [
    (9.0, "CRITICAL"),
    (7.0, "HIGH"),
    (4.0, "MEDIUM"),
    (0.1, "LOW"),
]

# Score thresholds (inclusive lower bounds), most severe first
SECURITY_STATUS_THRESHOLDS: List[Tuple[int, str]] = [
    (80, "CRITICAL"),
    (60, "HIGH"),
    (40, "MEDIUM"),
    (20, "LOW"),
]
SUPPLY_CHAIN_LEVEL_THRESHOLDS: List[Tuple[int, str]] = SECURITY_STATUS_THRESHOLDS
PRIORITY_THRESHOLDS: List[Tuple[int, str]] = [
    (80, "HIGH"),
    (50, "MEDIUM"),
]
PROJECT_HEALTH_THRESHOLDS: List[Tuple[int, str]] = [
    (80, "EXCELLENT"),
    (60, "GOOD"),
    (40, "FAIR"),
]

# License compliance signal
LICENSE_SCORE_HIGH_CONFLICT = 100
LICENSE_SCORE_VIOLATION = 60

# Supply-chain signal weights
SUPPLY_CHAIN_WEIGHT_ABANDONED = 10
SUPPLY_CHAIN_WEIGHT_UNMAINTAINED = 5
SUPPLY_CHAIN_WEIGHT_NO_REPOSITORY = 3

# Maintenance thresholds in days
ABANDONED_THRESHOLD_DAYS = 730
UNMAINTAINED_THRESHOLD_DAYS = 365


def bucket_for_score(
    score: float, thresholds: List[Tuple[int, str]], default: str
) -> str:
    """Return the label of the first threshold the score reaches."""
    for minimum, label in thresholds:
        if score >= minimum:
            return label
    return default
