"""Rich-based terminal report renderer with JSON/CSV support."""

from __future__ import annotations

import csv
import io
import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .aggregator import DAY_NAMES
from .models import AnalysisReport

_HEAT_LEVELS = " ░▒▓█"


def _format_number(n: int) -> str:
    return f"{n:,}"


def _format_hours(h: float) -> str:
    if h <= 0:
        return "-"
    if h < 1:
        return f"{h * 60:.0f}m"
    if h < 24:
        return f"{h:.1f}h"
    return f"{h / 24:.1f}d"


def _format_date(iso: str | None) -> str:
    """Format an ISO 8601 date string to YYYY-MM-DD for display."""
    if not iso:
        return "-"
    return iso[:10] if len(iso) >= 10 else iso


def _make_bar(percentage: float, width: int = 20) -> str:
    filled = round(percentage / 100 * width)
    return "█" * filled + "░" * (width - filled)


def _heat_row(row: list[int], peak: int) -> str:
    if peak <= 0:
        return _HEAT_LEVELS[0] * len(row)
    top = len(_HEAT_LEVELS) - 1
    return "".join(_HEAT_LEVELS[round(count / peak * top)] for count in row)


def _write_to_file(content: str, output_file: str) -> None:
    """Write content to a file and print confirmation."""
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(content)
    Console().print(f"Saved to {output_file}")


def render_report(
    report: AnalysisReport,
    top_n: int = 10,
    output_file: str | None = None,
) -> None:
    """Render an AnalysisReport to the terminal using rich."""
    if output_file:
        string_io = io.StringIO()
        console = Console(file=string_io, force_terminal=False, width=120)
    else:
        console = Console()

    meta = report.metadata
    subtitle = f"\n{meta.description}" if meta.description else ""
    console.print(Panel(
        Text(f"repo-analyzer: {report.repository.full_name}{subtitle}", justify="center"),
        style="bold cyan",
    ))
    console.print()

    if report.degraded:
        console.print(
            f"[bold yellow]Warning:[/bold yellow] {len(report.degraded)} section(s) "
            f"could not be computed in time: {', '.join(report.degraded)}"
        )
        console.print()

    console.print("[bold]Summary[/bold]")
    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column("label", style="dim")
    summary.add_column("value", style="bold")
    summary.add_row("Stars", _format_number(meta.stars))
    summary.add_row("Forks", _format_number(meta.forks))
    summary.add_row("Watchers", _format_number(meta.watchers))
    summary.add_row("Open Issues", _format_number(meta.open_issues))
    summary.add_row("Primary Language", meta.language or "-")
    summary.add_row("Default Branch", meta.default_branch or "-")
    summary.add_row("Size", f"{_format_number(meta.size)} KB")
    summary.add_row("Created", _format_date(meta.created_at))
    summary.add_row("Updated", _format_date(meta.updated_at))
    console.print(summary)
    console.print()

    if report.languages:
        console.print("[bold]Language Distribution[/bold]")
        lang_table = Table(show_header=True, header_style="bold")
        lang_table.add_column("Language")
        lang_table.add_column("Bar")
        lang_table.add_column("Percentage", justify="right")
        lang_table.add_column("Bytes", justify="right")

        ordered = sorted(report.languages.items(), key=lambda x: x[1], reverse=True)
        for lang, pct in ordered[:15]:
            lang_table.add_row(
                lang,
                _make_bar(pct),
                f"{pct}%",
                _format_number(report.language_bytes.get(lang, 0)),
            )
        console.print(lang_table)
        console.print()

    cs = report.commit_stats
    console.print("[bold]Commit Activity[/bold]")
    commit_table = Table(show_header=False, box=None, padding=(0, 2))
    commit_table.add_column("label", style="dim")
    commit_table.add_column("value", style="bold")
    commit_table.add_row("Commits (last year)", _format_number(cs.total_commits))
    commit_table.add_row("Avg Weekly Commits", _format_number(cs.avg_weekly_commits))
    commit_table.add_row(
        "Most Active Day",
        f"{cs.most_active_day.name} ({_format_number(cs.most_active_day.total)})",
    )
    cf = report.code_frequency
    commit_table.add_row("Lines Added", _format_number(cf.total_additions))
    commit_table.add_row("Lines Deleted", _format_number(cf.total_deletions))
    console.print(commit_table)
    console.print()

    if any(any(row) for row in report.punch_card):
        console.print("[bold]Punch Card (hour of day, UTC)[/bold]")
        punch_table = Table(show_header=True, header_style="bold")
        punch_table.add_column("Day")
        punch_table.add_column("00" + " " * 20 + "23", no_wrap=True)
        punch_table.add_column("Commits", justify="right")
        peak = max(max(row) for row in report.punch_card)
        for day, row in enumerate(report.punch_card):
            punch_table.add_row(DAY_NAMES[day][:3], _heat_row(row, peak), _format_number(sum(row)))
        console.print(punch_table)
        console.print()

    pr = report.pull_requests
    issues = report.issues
    console.print("[bold]Turnaround[/bold]")
    turnaround = Table(show_header=False, box=None, padding=(0, 2))
    turnaround.add_column("label", style="dim")
    turnaround.add_column("value", style="bold")
    turnaround.add_row("Closed PRs Analyzed", _format_number(pr.analyzed))
    turnaround.add_row("Merged PRs", _format_number(pr.merged))
    turnaround.add_row("Avg Merge Time", _format_hours(pr.avg_merge_hours))
    turnaround.add_row("Median Merge Time", _format_hours(pr.median_merge_hours))
    turnaround.add_row("Closed Issues Analyzed", _format_number(issues.closed))
    turnaround.add_row("Avg Close Time", _format_hours(issues.avg_close_hours))
    turnaround.add_row("Median Close Time", _format_hours(issues.median_close_hours))
    console.print(turnaround)
    console.print()

    if report.contributors:
        console.print(f"[bold]Top Contributors (top {top_n})[/bold]")
        contrib_table = Table(show_header=True, header_style="bold")
        contrib_table.add_column("#", justify="right")
        contrib_table.add_column("Username")
        contrib_table.add_column("Commits ▼", justify="right")
        contrib_table.add_column("Additions", justify="right")
        contrib_table.add_column("Deletions", justify="right")
        contrib_table.add_column("Weeks", justify="right")
        contrib_table.add_column("Last Active", no_wrap=True)

        for i, c in enumerate(report.contributors[:top_n], 1):
            contrib_table.add_row(
                str(i),
                c.login,
                _format_number(c.total_commits),
                _format_number(c.additions),
                _format_number(c.deletions),
                str(len(c.timeline)),
                _format_date(c.timeline[-1].date) if c.timeline else "-",
            )
        console.print(contrib_table)
        console.print()

    if output_file:
        _write_to_file(string_io.getvalue(), output_file)


def render_json(report: AnalysisReport, output_file: str | None = None) -> None:
    """Render an AnalysisReport as JSON."""
    content = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if output_file:
        _write_to_file(content, output_file)
    else:
        print(content)


def render_csv(report: AnalysisReport, output_file: str | None = None) -> None:
    """Render contributor data as CSV."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["login", "total_commits", "contributions", "additions", "deletions"])
    for c in report.contributors:
        writer.writerow([c.login, c.total_commits, c.contributions, c.additions, c.deletions])
    content = output.getvalue()
    if output_file:
        _write_to_file(content, output_file)
    else:
        print(content, end="")
