"""
License normalization and risk classification.

Manifests declare licenses as bare strings, arrays of alternatives or
objects (``{"type": "MIT", "url": ...}`` in legacy npm metadata). Everything
is collapsed into one canonical string here and classified against the
risk table in ``compliance.core.policy``; nothing downstream branches on the
original shape.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from compliance.core.policy import LICENSE_ALIASES, LICENSE_RISK_TABLE
from compliance.models.license import (
    RISK_BUCKET_RANK,
    LicenseClassification,
    RiskBucket,
)
from compliance.models.package import NOASSERTION

_CANONICAL_IDS: Dict[str, str] = {key.lower(): key for key in LICENSE_RISK_TABLE}
_SUFFIX_RE = re.compile(r"^(?P<base>.+?)(?P<suffix>-only|-or-later|\+)?$", re.IGNORECASE)
_OPERATOR_RE = re.compile(r"\s+(OR|AND)\s+", re.IGNORECASE)
_WITH_RE = re.compile(r"\s+WITH\s+", re.IGNORECASE)


def collapse_license_value(raw: Any) -> str:
    """
    Collapse any declared license shape into a single string.

    Arrays contribute their first element, objects their ``name`` (legacy
    ``type`` / ``id`` keys are accepted too), anything else is stringified.
    Empty or absent values become ``NOASSERTION``.
    """
    if raw is None:
        return NOASSERTION
    if isinstance(raw, list):
        return collapse_license_value(raw[0]) if raw else NOASSERTION
    if isinstance(raw, dict):
        for key in ("name", "type", "id"):
            if raw.get(key):
                return collapse_license_value(raw[key])
        return NOASSERTION
    text = str(raw).strip()
    return text or NOASSERTION


def _strip_wrapping(text: str) -> str:
    # Metadata suffix: MIT;link="https://..."
    text = text.split(";", 1)[0]
    text = text.strip().strip("\"'").strip()
    while text.startswith("(") and text.endswith(")") and text.count("(") == 1:
        text = text[1:-1].strip()
    return text


def _canonical_identifier(text: str) -> str:
    text = _strip_wrapping(text)
    if not text:
        return NOASSERTION

    match = _SUFFIX_RE.match(text)
    base, suffix = match.group("base"), match.group("suffix")
    canonical = _CANONICAL_IDS.get(base.lower())
    if canonical:
        return canonical + (suffix.lower() if suffix else "")

    alias = LICENSE_ALIASES.get(text.lower())
    if alias:
        return alias
    if text.upper() == NOASSERTION:
        return NOASSERTION
    return text


def _split_expression(text: str) -> Tuple[List[str], Optional[str]]:
    """Split a flat SPDX expression into operands and its single operator."""
    parts = _OPERATOR_RE.split(text)
    if len(parts) == 1:
        return [text], None
    operands = [p.strip().strip("()").strip() for p in parts[0::2]]
    operators = {op.upper() for op in parts[1::2]}
    if len(operators) > 1:
        return operands, "MIXED"
    return operands, operators.pop()


def canonicalize_license(text: str) -> str:
    """Canonicalize a license string, including flat ``OR`` / ``AND`` expressions."""
    stripped = _strip_wrapping(text)
    operands, operator = _split_expression(stripped)
    if operator is None:
        return _canonical_identifier(stripped)
    if operator == "MIXED":
        return stripped
    return f" {operator} ".join(_canonical_identifier(op) for op in operands)


def _lookup_bucket(identifier: str) -> RiskBucket:
    identifier = _WITH_RE.split(identifier, 1)[0]
    match = _SUFFIX_RE.match(identifier)
    if not match:
        return RiskBucket.UNKNOWN
    canonical = _CANONICAL_IDS.get(match.group("base").lower())
    return LICENSE_RISK_TABLE[canonical] if canonical else RiskBucket.UNKNOWN


def classify_license(normalized: str) -> RiskBucket:
    """
    Map a canonical license string to its risk bucket.

    ``OR`` expressions take the least restrictive alternative and ``AND``
    expressions the most restrictive, provided every operand is known.
    Anything not in the risk table is UNKNOWN.
    """
    if not normalized or normalized == NOASSERTION:
        return RiskBucket.UNKNOWN

    operands, operator = _split_expression(normalized)
    if operator is None:
        return _lookup_bucket(normalized)
    if operator == "MIXED":
        return RiskBucket.UNKNOWN

    buckets = [_lookup_bucket(op) for op in operands]
    if RiskBucket.UNKNOWN in buckets:
        return RiskBucket.UNKNOWN
    pick = min if operator == "OR" else max
    return pick(buckets, key=lambda b: RISK_BUCKET_RANK[b])


def normalize_license(raw: Any) -> LicenseClassification:
    """Collapse, canonicalize and classify a declared license. Never raises."""
    normalized = canonicalize_license(collapse_license_value(raw))
    return LicenseClassification(normalized=normalized, bucket=classify_license(normalized))


def license_family(normalized: str) -> str:
    """Identifier without ``-only`` / ``-or-later`` / ``+`` for policy matching."""
    match = _SUFFIX_RE.match(normalized)
    return match.group("base") if match else normalized
