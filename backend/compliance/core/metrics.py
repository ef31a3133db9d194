"""
Prometheus Metrics Collection for the Compliance Analyzer

Counters and histograms for pipeline runs, per-stage timings and calls to
external services (OSV, deps.dev, npm registry, PyPI). The embedding
service decides whether and how to expose the default registry.
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info

from compliance import __version__

app_info = Info("compliance_analyzer", "Analyzer information")
app_info.info({"version": __version__})

# =============================================================================
# Pipeline Metrics
# =============================================================================

analysis_runs_total = Counter(
    "analysis_runs_total",
    "Total analysis pipeline runs by final status",
    ["status"],
)

analysis_stage_duration_seconds = Histogram(
    "analysis_stage_duration_seconds",
    "Pipeline stage duration in seconds",
    ["stage"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30, 60),
)

analysis_stage_errors_total = Counter(
    "analysis_stage_errors_total",
    "Total pipeline stage failures",
    ["stage"],
)

analysis_packages_resolved_total = Counter(
    "analysis_packages_resolved_total",
    "Total packages placed in a bill of materials by resolution strategy",
    ["strategy"],
)

analysis_findings_total = Counter(
    "analysis_findings_total",
    "Total vulnerability findings by severity",
    ["severity"],
)

# =============================================================================
# External API Metrics
# =============================================================================

external_api_requests_total = Counter(
    "external_api_requests_total",
    "Total external API requests by service",
    ["service"],
)

external_api_errors_total = Counter(
    "external_api_errors_total",
    "Total external API errors by service",
    ["service"],
)

external_api_duration_seconds = Histogram(
    "external_api_duration_seconds",
    "External API request duration in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

external_api_rate_limit_hits_total = Counter(
    "external_api_rate_limit_hits_total",
    "Total rate limit hits by service",
    ["service"],
)


def track_stage(stage: str):
    """Context manager to track pipeline stage duration and failures."""

    @contextmanager
    def _tracker():
        start_time = time.time()
        try:
            yield
        except Exception:
            analysis_stage_errors_total.labels(stage=stage).inc()
            raise
        finally:
            analysis_stage_duration_seconds.labels(stage=stage).observe(
                time.time() - start_time
            )

    return _tracker()
