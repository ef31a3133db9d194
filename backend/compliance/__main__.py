import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from compliance.core.config import settings
from compliance.core.policy import load_policy
from compliance.services.aggregator import STATUS_ERROR
from compliance.services.analysis import (
    ONLINE_ONLY_ANALYZERS,
    get_all_analyzer_names,
    run_analysis,
)

app = typer.Typer(
    help="Dependency compliance analyzer: SBOM, licenses, vulnerabilities and staleness.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """
    Dependency compliance analyzer CLI.
    """
    level = "DEBUG" if debug else settings.LOG_LEVEL
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def analyze(
    path: Path = typer.Argument(..., help="Project directory to analyze"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the JSON report to this file instead of stdout"
    ),
    offline: bool = typer.Option(
        False, "--offline", help="Disable registry lookups and the vulnerability database query"
    ),
    policy: Optional[Path] = typer.Option(
        None, "--policy", help="JSON license policy overriding the built-in one"
    ),
    skip: Optional[List[str]] = typer.Option(
        None, "--skip", help="Analyzer to leave out of the run (repeatable)"
    ),
):
    """Analyze a project directory and emit the compliance report."""
    config = settings
    if offline:
        config = settings.model_copy(
            update={"STALENESS_CHECK_ENABLED": False, "SUPPLY_CHAIN_LOOKUP_ENABLED": False}
        )

    skip = skip or []
    unknown = sorted(set(skip).difference(get_all_analyzer_names()))
    if unknown:
        typer.echo(
            f"Unknown analyzer(s) {', '.join(unknown)}; "
            f"choose from {', '.join(get_all_analyzer_names())}",
            err=True,
        )
        raise typer.Exit(code=2)

    skipped = set(skip)
    if offline:
        skipped.update(ONLINE_ONLY_ANALYZERS)

    try:
        license_policy = load_policy(str(policy)) if policy else None
    except (OSError, ValueError) as e:
        typer.echo(f"Could not load license policy {policy}: {e}", err=True)
        raise typer.Exit(code=2)

    report = run_analysis(
        path,
        config=config,
        policy=license_policy,
        skip_analyzers=sorted(skipped),
    )
    rendered = json.dumps(report, indent=2)

    if output:
        output.write_text(rendered + "\n", encoding="utf-8")
        assessment = report["riskAssessment"]
        typer.echo(
            f"Report written to {output} "
            f"(status {report['metadata']['status']}, "
            f"risk {assessment['level']} {assessment['overallScore']}/100)"
        )
    else:
        typer.echo(rendered)

    if report["metadata"]["status"] == STATUS_ERROR:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
