"""Dependency compliance analysis: SBOM, license, vulnerability and staleness reports."""

__version__ = "1.0.0"
