"""
Shared utility functions for normalizers.

These helpers provide consistent parsing of severity values and loosely
typed fields across the analyzers.
"""

from typing import Any, List, Optional, Union

from compliance.core.constants import CVSS_SEVERITY_BANDS, SEVERITY_ALIASES
from compliance.models.finding import Severity


def safe_severity(
    value: Optional[str],
    default: Severity = Severity.UNKNOWN,
) -> Severity:
    """
    Safely parse a severity string to Severity enum.

    Handles the spellings used by the different advisory databases and
    returns a valid Severity enum value, never raises ValueError.

    Args:
        value: Raw severity string
        default: Fallback severity if parsing fails

    Returns:
        Valid Severity enum value
    """
    if not value or not isinstance(value, str):
        return default

    normalized = value.strip().upper()
    normalized = SEVERITY_ALIASES.get(normalized, normalized)

    try:
        return Severity(normalized)
    except ValueError:
        return default


def severity_from_cvss_score(score: Any) -> Optional[Severity]:
    """
    Map a numeric CVSS base score to a severity band.

    Returns None for vectors (``CVSS:3.1/AV:N/...``) and other values that
    are not plain numbers.
    """
    try:
        value = float(score)
    except (TypeError, ValueError):
        return None
    for minimum, label in CVSS_SEVERITY_BANDS:
        if value >= minimum:
            return Severity(label)
    return None


def normalize_list(value: Optional[Union[str, List[str]]]) -> List[str]:
    """
    Normalize a value that could be a string or list to always be a list.

    Args:
        value: String, list of strings, or None

    Returns:
        List of strings (empty list if input is None/empty)
    """
    if not value:
        return []
    if isinstance(value, list):
        return [v for v in value if v]
    return [value]
