"""
Analyzer Registry

Central registry of the analyzers run on every bill of materials, in run
order. Report sections are keyed by these names in the aggregator.
"""

from typing import Dict, List

from compliance.services.analyzers import (
    Analyzer,
    LicenseAnalyzer,
    OSVAnalyzer,
    OutdatedAnalyzer,
    SupplyChainAnalyzer,
)

analyzers: Dict[str, Analyzer] = {
    "license_compliance": LicenseAnalyzer(),
    "osv": OSVAnalyzer(),
    "outdated_packages": OutdatedAnalyzer(),
    "supply_chain": SupplyChainAnalyzer(),
}

# Analyzers with no offline mode; the others honour the lookup flags in Settings
ONLINE_ONLY_ANALYZERS = {"osv"}


def get_all_analyzer_names() -> List[str]:
    """All analyzer names in run order."""
    return list(analyzers.keys())
