"""Data aggregation: fan out GitHub reads and reduce them to an AnalysisReport."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .config import AnalyzerConfig
from .errors import AnalysisError, InvalidReference, RepoAnalyzerError
from .github.client import GitHubClient
from .github.poller import PollState, StatsPoller
from .locator import parse_repo_reference
from .models import (
    AnalysisReport,
    CodeFrequency,
    CodeFrequencyPoint,
    CommitStats,
    ContributorRecord,
    IssueStats,
    MostActiveDay,
    PullRequestStats,
    RepositoryFacts,
    RepositoryRef,
    TimelineWeek,
    WeeklyCommitActivity,
)
from .stats import average, median, round_half_up

logger = logging.getLogger(__name__)

MS_IN_WEEK = 604_800_000
SECONDS_IN_HOUR = 3600

DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

_NO_FALLBACK = object()


@dataclass
class BranchResult:
    """Outcome of one branch of a concurrent fan-out."""

    name: str
    value: Any = None
    error: Exception | None = None
    degraded: bool = False


async def _run_branch(
    name: str, awaitable: Awaitable[Any], fallback: Any = _NO_FALLBACK
) -> BranchResult:
    try:
        return BranchResult(name=name, value=await awaitable)
    except Exception as exc:
        if fallback is _NO_FALLBACK:
            return BranchResult(name=name, error=exc)
        logger.warning("%s failed, using empty value: %s", name, exc)
        return BranchResult(name=name, value=fallback, degraded=True)


async def _join(
    branches: dict[str, Awaitable[Any]],
    fallbacks: dict[str, Any] | None = None,
) -> dict[str, BranchResult]:
    """Run ``branches`` concurrently and return their results keyed by name.

    No branch raises, so every sibling runs to completion before the join
    returns. Branches listed in ``fallbacks`` never fail: an exception is
    replaced by the fallback value and the result is marked degraded.
    Other exceptions are kept on ``BranchResult.error``.
    """
    fallbacks = fallbacks or {}
    results = await asyncio.gather(
        *(
            _run_branch(name, aw, fallbacks.get(name, _NO_FALLBACK))
            for name, aw in branches.items()
        )
    )
    return {r.name: r for r in results}


def _raise_first_failure(results: dict[str, BranchResult], ref: RepositoryRef) -> None:
    """Raise AnalysisError for the first failed branch in declaration order.

    Errors that are not RepoAnalyzerError are re-raised unchanged.
    """
    for result in results.values():
        cause = result.error
        if cause is None:
            continue
        if not isinstance(cause, RepoAnalyzerError):
            raise cause
        raise AnalysisError(
            f"Analysis of {ref.full_name} failed: {cause.message}", cause
        ) from cause


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _hours_between(start: Any, end: Any) -> float | None:
    start_dt = _parse_timestamp(start)
    end_dt = _parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt).total_seconds() / SECONDS_IN_HOUR


def week_index(moment: datetime) -> int:
    """Index of the epoch-aligned 7-day window containing ``moment``."""
    return math.floor(moment.timestamp() * 1000 / MS_IN_WEEK)


def week_start(index: int) -> str:
    start = datetime.fromtimestamp(index * MS_IN_WEEK / 1000, tz=timezone.utc)
    return start.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_timeline(commits: Iterable[dict[str, Any]]) -> list[TimelineWeek]:
    """Fold commits into ascending per-week counts.

    Raises ValueError when a commit carries no usable author date.
    """
    weekly: dict[int, int] = {}
    for commit in commits:
        date = commit["commit"]["author"]["date"]
        moment = _parse_timestamp(date)
        if moment is None:
            raise ValueError(f"Unparseable commit date: {date!r}")
        week = week_index(moment)
        weekly[week] = weekly.get(week, 0) + 1
    return [
        TimelineWeek(week=week, commits=count, date=week_start(week))
        for week, count in sorted(weekly.items())
    ]


def language_percentages(lang_bytes: dict[str, int]) -> dict[str, float]:
    """Share of each language in percent, rounded to two decimals."""
    total = sum(lang_bytes.values()) or 1
    return {
        lang: round_half_up(b * 100 / total, 2) for lang, b in lang_bytes.items()
    }


def build_punch_card(entries: Iterable[Any]) -> list[list[int]]:
    """Scatter ``[day, hour, count]`` entries into a 7x24 grid.

    A later entry for the same cell overwrites an earlier one; counts are
    not summed. Malformed entries and entries outside the grid are ignored.
    """
    matrix = [[0] * 24 for _ in range(7)]
    for entry in entries:
        try:
            day, hour, count = entry
        except (TypeError, ValueError):
            logger.debug("Skipping malformed punch card entry: %r", entry)
            continue
        if not all(
            isinstance(v, int) and not isinstance(v, bool) for v in (day, hour, count)
        ):
            logger.debug("Skipping malformed punch card entry: %r", entry)
            continue
        if not (0 <= day < 7 and 0 <= hour < 24):
            logger.debug("Skipping out-of-range punch card entry: %r", entry)
            continue
        matrix[day][hour] = count
    return matrix


def most_active_day(matrix: list[list[int]]) -> MostActiveDay:
    """Day with the largest total; the earliest day wins ties."""
    best = MostActiveDay(day=0, name=DAY_NAMES[0], total=0)
    for day, row in enumerate(matrix):
        total = sum(row)
        if total > best.total:
            best = MostActiveDay(day=day, name=DAY_NAMES[day], total=total)
    return best


def line_totals(
    contributor_stats: Iterable[dict[str, Any]],
) -> tuple[dict[str, tuple[int, int]], int, int]:
    """Sum additions/deletions per author and across the repository.

    Returns ``(by_login, total_additions, total_deletions)``. Entries whose
    author is null (deleted accounts) only count toward the totals.
    """
    by_login: dict[str, tuple[int, int]] = {}
    total_additions = 0
    total_deletions = 0
    for entry in contributor_stats:
        weeks = entry.get("weeks") or []
        additions = sum(w.get("a") or 0 for w in weeks)
        deletions = sum(w.get("d") or 0 for w in weeks)
        total_additions += additions
        total_deletions += deletions
        author = entry.get("author")
        if author and author.get("login"):
            by_login[author["login"]] = (additions, deletions)
    return by_login, total_additions, total_deletions


def merge_durations(pull_requests: Iterable[dict[str, Any]]) -> list[float]:
    """Hours from creation to merge for every merged pull request."""
    durations = []
    for pr in pull_requests:
        if not pr.get("merged_at"):
            continue
        hours = _hours_between(pr.get("created_at"), pr["merged_at"])
        if hours is not None:
            durations.append(hours)
    return durations


def closed_issues_only(issues: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    # GitHub issues API includes PRs; filter them out
    return [i for i in issues if "pull_request" not in i]


def close_durations(issues: Iterable[dict[str, Any]]) -> list[float]:
    """Hours from creation to close for each issue."""
    durations = []
    for issue in issues:
        hours = _hours_between(issue.get("created_at"), issue.get("closed_at"))
        if hours is not None:
            durations.append(hours)
    return durations


def weekly_activity(raw: Iterable[dict[str, Any]]) -> list[WeeklyCommitActivity]:
    return [
        WeeklyCommitActivity(
            week=w.get("week") or 0,
            total=w.get("total") or 0,
            days=list(w.get("days") or []),
        )
        for w in raw
    ]


def summarize_commits(
    activity: list[WeeklyCommitActivity], matrix: list[list[int]]
) -> CommitStats:
    total = sum(w.total for w in activity)
    return CommitStats(
        total_commits=total,
        avg_weekly_commits=int(round_half_up(total / (len(activity) or 1))),
        most_active_day=most_active_day(matrix),
    )


def recent_code_frequency(raw: list[Any], count: int = 12) -> list[CodeFrequencyPoint]:
    """The last ``count`` ``[week, additions, deletions]`` entries."""
    points = []
    for entry in raw[-count:] if count > 0 else []:
        try:
            week, additions, deletions = entry
        except (TypeError, ValueError):
            logger.debug("Skipping malformed code frequency entry: %r", entry)
            continue
        points.append(
            CodeFrequencyPoint(week=week, additions=additions, deletions=deletions)
        )
    return points


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


async def _contributor_record(
    client: GitHubClient,
    ref: RepositoryRef,
    contributor: dict[str, Any],
    per_page: int,
) -> ContributorRecord:
    login = contributor.get("login") or ""
    commits = await client.list_commits_by_author(
        ref.owner, ref.name, login, per_page=per_page
    )
    timeline = build_timeline(_as_list(commits))
    record = _base_record(contributor)
    record.timeline = timeline
    record.total_commits = sum(w.commits for w in timeline)
    return record


def _base_record(contributor: dict[str, Any]) -> ContributorRecord:
    return ContributorRecord(
        login=contributor.get("login") or "",
        contributions=contributor.get("contributions") or 0,
        id=contributor.get("id"),
        avatar_url=contributor.get("avatar_url"),
        html_url=contributor.get("html_url"),
        type=contributor.get("type"),
    )


async def analyze_repository(
    client: GitHubClient,
    reference: str,
    config: AnalyzerConfig | None = None,
) -> AnalysisReport:
    """Fetch everything needed for ``reference`` and build its report.

    Raises AnalysisError when the reference is invalid or a required read
    (metadata, languages, contributors, closed PRs/issues) fails.
    Contributor timelines and ``/stats/*`` sections degrade to empty values.
    """
    top_contributors = config.top_contributors if config else 10
    commits_per_author = config.commits_per_author if config else 100
    recent_weeks = config.recent_code_frequency if config else 12
    poller = StatsPoller(
        client,
        max_attempts=config.poll_attempts if config else 6,
        interval=config.poll_interval if config else 2.0,
    )

    try:
        ref = parse_repo_reference(reference)
    except InvalidReference as exc:
        raise AnalysisError(f"Invalid repository reference: {exc.message}", exc) from exc

    owner, name = ref.owner, ref.name
    degraded: list[str] = []

    # Phase 1: repository facts, languages, contributors
    core = await _join(
        {
            "repository": client.get_repository(owner, name),
            "languages": client.get_languages(owner, name),
            "contributors": client.list_contributors(owner, name),
        }
    )
    _raise_first_failure(core, ref)
    facts = RepositoryFacts.from_api(core["repository"].value or {})
    lang_bytes = dict(core["languages"].value or {})
    listed = _as_list(core["contributors"].value)[:top_contributors]

    # Phase 2: commit history per top contributor
    history_branches = {
        f"timeline[{i}]:{c.get('login', '')}": _contributor_record(
            client, ref, c, commits_per_author
        )
        for i, c in enumerate(listed)
    }
    history = await _join(
        history_branches,
        fallbacks={
            key: _base_record(c) for key, c in zip(history_branches, listed)
        },
    )
    records = []
    for key, result in history.items():
        if result.degraded:
            degraded.append(key)
        records.append(result.value)

    # Phase 3: /stats/* (polled) plus closed PRs and issues
    stats_paths = {
        kind: client.stats_path(owner, name, kind)
        for kind in ("commit_activity", "code_frequency", "punch_card", "contributors")
    }
    heavy = await _join(
        {
            **{
                f"stats/{kind}": poller.poll(path)
                for kind, path in stats_paths.items()
            },
            "pull_requests": client.list_closed_pull_requests(owner, name),
            "issues": client.list_closed_issues(owner, name),
        }
    )
    _raise_first_failure(heavy, ref)

    polled: dict[str, list[Any]] = {}
    for kind in stats_paths:
        state, body = heavy[f"stats/{kind}"].value
        if state is PollState.EXHAUSTED:
            degraded.append(f"stats/{kind}")
        polled[kind] = _as_list(body)

    closed_prs = _as_list(heavy["pull_requests"].value)
    closed_issues = closed_issues_only(_as_list(heavy["issues"].value))

    # Reductions
    matrix = build_punch_card(polled["punch_card"])
    activity = weekly_activity(polled["commit_activity"])
    by_login, total_additions, total_deletions = line_totals(polled["contributors"])

    for record in records:
        record.additions, record.deletions = by_login.get(record.login, (0, 0))
    records.sort(key=lambda r: r.total_commits, reverse=True)

    pr_hours = merge_durations(closed_prs)
    issue_hours = close_durations(closed_issues)

    return AnalysisReport(
        repository=ref,
        metadata=facts,
        languages=language_percentages(lang_bytes),
        language_bytes=lang_bytes,
        contributors=records,
        commit_activity=activity,
        code_frequency=CodeFrequency(
            recent=recent_code_frequency(polled["code_frequency"], recent_weeks),
            total_additions=total_additions,
            total_deletions=total_deletions,
        ),
        punch_card=matrix,
        commit_stats=summarize_commits(activity, matrix),
        pull_requests=PullRequestStats(
            analyzed=len(closed_prs),
            merged=sum(1 for pr in closed_prs if pr.get("merged_at")),
            avg_merge_hours=round_half_up(average(pr_hours), 1),
            median_merge_hours=round_half_up(median(pr_hours), 1),
        ),
        issues=IssueStats(
            open=facts.open_issues,
            closed=len(closed_issues),
            avg_close_hours=round_half_up(average(issue_hours), 1),
            median_close_hours=round_half_up(median(issue_hours), 1),
        ),
        degraded=degraded,
    )
