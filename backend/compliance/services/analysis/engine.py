import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import httpx

from compliance.core.config import Settings, settings as default_settings
from compliance.core.exceptions import AnalysisFatal
from compliance.core.metrics import analysis_runs_total, track_stage
from compliance.core.policy import load_policy
from compliance.models.license import LicensePolicy
from compliance.models.package import BillOfMaterials
from compliance.services.aggregator import STATUS_ERROR, ReportSynthesizer
from compliance.services.analysis.registry import analyzers, get_all_analyzer_names
from compliance.services.analyzers import AnalysisContext, Analyzer
from compliance.services.local_enricher import enrich_packages
from compliance.services.manifest_resolver import resolve_manifest
from compliance.services.sbom_builder import build_bom, to_spdx

logger = logging.getLogger(__name__)


async def process_analyzer(
    analyzer_name: str,
    analyzer: Analyzer,
    bom: BillOfMaterials,
    context: AnalysisContext,
    synthesizer: ReportSynthesizer,
) -> str:
    try:
        with track_stage(analyzer_name):
            result = await analyzer.analyze(bom, context)

        synthesizer.aggregate(analyzer_name, result)

        context.logger.info(f"Analysis {analyzer_name} completed for {context.project_path}")
        return f"{analyzer_name}: Success"
    except Exception as e:
        context.logger.error(f"Analysis {analyzer_name} failed: {e}")
        # Failed analyzers still yield a well-formed section carrying the error
        synthesizer.aggregate(analyzer_name, {"error": str(e)})
        return f"{analyzer_name}: Failed"


def _build_stage(name: str, synthesizer: ReportSynthesizer, func, *args, **kwargs):
    with track_stage(name):
        result = func(*args, **kwargs)
    synthesizer.record_stage(name, True)
    return result


async def _run_pipeline(
    project_path: Path,
    config: Settings,
    policy: LicensePolicy,
    log: logging.Logger,
    client: Optional[httpx.AsyncClient],
    skip_analyzers: Iterable[str],
    started_at: float,
) -> Dict[str, Any]:
    if not project_path.is_dir():
        raise AnalysisFatal(f"Project directory {project_path} does not exist")

    synthesizer = ReportSynthesizer(config, log)

    resolution = _build_stage("resolve", synthesizer, resolve_manifest, project_path, config, log)
    stats = _build_stage(
        "enrich", synthesizer, enrich_packages, resolution.packages, project_path, log
    )
    bom = _build_stage("sbom", synthesizer, build_bom, resolution, stats, started_at, config, log)

    skipped = set(skip_analyzers)
    unknown = skipped.difference(get_all_analyzer_names())
    if unknown:
        log.warning(f"Ignoring unknown analyzers to skip: {', '.join(sorted(unknown))}")
    results_summary: List[str] = []
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        context = AnalysisContext(
            project_path=project_path,
            settings=config,
            policy=policy,
            logger=log,
            client=client,
        )
        for analyzer_name, analyzer in analyzers.items():
            if analyzer_name in skipped:
                log.info(f"Skipping analyzer {analyzer_name}")
                synthesizer.aggregate(
                    analyzer_name, {"skipped": True, "reason": "Disabled for this run"}
                )
                continue
            results_summary.append(
                await process_analyzer(analyzer_name, analyzer, bom, context, synthesizer)
            )
    finally:
        if owns_client:
            await client.aclose()

    log.info(f"Analyzers finished for {project_path}: {', '.join(results_summary)}")
    return synthesizer.synthesize(to_spdx(bom, config), str(project_path), policy, started_at)


async def analyze_project(
    project_path: Any,
    config: Optional[Settings] = None,
    policy: Optional[LicensePolicy] = None,
    log: Optional[logging.Logger] = None,
    client: Optional[httpx.AsyncClient] = None,
    skip_analyzers: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Run the full compliance pipeline for one project directory.

    Stages run strictly in sequence: manifest resolution, local enrichment,
    bill-of-materials construction, then every registered analyzer, then
    report synthesis. Never raises: any failure that escapes a stage is
    turned into an error report with every top-level key present.

    Args:
        project_path: Directory to analyze
        config: Settings override, defaults to the module-level settings
        policy: License policy, defaults to ``LICENSE_POLICY_FILE`` or the built-in policy
        log: Logger injected into every stage
        client: HTTP client for external lookups; one is created and closed when omitted
        skip_analyzers: Analyzer names to leave out of this run

    Returns:
        The report dict
    """
    config = config or default_settings
    log = log or logger
    started_at = time.perf_counter()
    path = Path(project_path)
    policy_version = policy.version if policy else None

    log.info(f"Starting analysis for {path}")
    try:
        if policy is None:
            policy = load_policy(config.LICENSE_POLICY_FILE)
            policy_version = policy.version
        report = await _run_pipeline(
            path, config, policy, log, client, skip_analyzers or (), started_at
        )
    except Exception as e:
        fatal = e if isinstance(e, AnalysisFatal) else AnalysisFatal(f"{type(e).__name__}: {e}")
        log.exception(f"Analysis of {path} failed: {fatal}")
        report = ReportSynthesizer(config, log).error_report(
            e, str(path), policy_version, started_at
        )

    status = report["metadata"]["status"]
    analysis_runs_total.labels(status=status).inc()
    if status != STATUS_ERROR:
        log.info(
            f"Analysis of {path} finished with status {status} in {report['metadata']['durationMs']}ms"
        )
    return report


def run_analysis(project_path: Any, **kwargs) -> Dict[str, Any]:
    """Synchronous wrapper around :func:`analyze_project`."""
    return asyncio.run(analyze_project(project_path, **kwargs))

