from compliance.services.analysis.engine import (
    analyze_project,
    process_analyzer,
    run_analysis,
)
from compliance.services.analysis.registry import (
    ONLINE_ONLY_ANALYZERS,
    analyzers,
    get_all_analyzer_names,
)

__all__ = [
    # Engine
    "analyze_project",
    "process_analyzer",
    "run_analysis",
    # Registry
    "analyzers",
    "get_all_analyzer_names",
    "ONLINE_ONLY_ANALYZERS",
]
