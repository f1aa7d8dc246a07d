"""Orchestrator: wires together client, aggregator, and renderer."""

from __future__ import annotations

import asyncio

from .aggregator import analyze_repository
from .config import AnalyzerConfig
from .github.client import GitHubClient
from .models import AnalysisReport
from .renderer import render_csv, render_json, render_report


async def analyze(reference: str, config: AnalyzerConfig) -> AnalysisReport:
    """Analyze one repository with a client owned by this call."""
    async with GitHubClient.from_config(config) as client:
        return await analyze_repository(client, reference, config)


async def run(
    reference: str,
    config: AnalyzerConfig,
    output_format: str = "table",
    output_file: str | None = None,
    top_n: int = 10,
    deadline: float | None = None,
) -> None:
    """Main pipeline: fetch data, aggregate, render.

    ``deadline`` bounds the whole analysis in seconds; asyncio.TimeoutError
    propagates to the caller when it is exceeded.
    """
    if deadline:
        report = await asyncio.wait_for(analyze(reference, config), timeout=deadline)
    else:
        report = await analyze(reference, config)

    if output_format == "json":
        render_json(report, output_file=output_file)
    elif output_format == "csv":
        render_csv(report, output_file=output_file)
    else:
        render_report(report, top_n=top_n, output_file=output_file)
