"""
Exception taxonomy of the analysis pipeline.

Only ``AnalysisFatal`` ever reaches the pipeline's top level, and even that is
converted into an error report there. The others are raised and handled
inside the stage that owns them.
"""

from typing import Optional


class ComplianceError(Exception):
    """Base class for all analysis errors."""


class ManifestNotFound(ComplianceError):
    """The manifest a resolution strategy looks for does not exist."""


class ManifestParseError(ComplianceError):
    """A manifest exists but cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class EnrichmentUnavailable(ComplianceError):
    """No local installation cache to enrich from."""


class ExternalQueryFailure(ComplianceError):
    """A batched query against an external database failed."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        super().__init__(message)
        self.chunk_index = chunk_index


class AnalysisFatal(ComplianceError):
    """Unrecoverable pipeline failure."""
