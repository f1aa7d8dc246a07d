"""Data models for repo-analyzer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class RepositoryFacts:
    name: str
    description: str | None = None
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    language: str | None = None
    default_branch: str | None = None
    size: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RepositoryFacts:
        """Build from a ``GET /repos/{owner}/{repo}`` body."""
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            watchers=data.get("watchers_count") or 0,
            open_issues=data.get("open_issues_count") or 0,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            language=data.get("language"),
            default_branch=data.get("default_branch"),
            size=data.get("size") or 0,
        )


@dataclass
class TimelineWeek:
    """Commits by one author in one epoch-aligned week."""

    week: int
    commits: int
    date: str


@dataclass
class ContributorRecord:
    login: str
    contributions: int = 0
    id: int | None = None
    avatar_url: str | None = None
    html_url: str | None = None
    type: str | None = None
    total_commits: int = 0
    timeline: list[TimelineWeek] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0


@dataclass
class WeeklyCommitActivity:
    week: int
    total: int
    days: list[int] = field(default_factory=list)


@dataclass
class CodeFrequencyPoint:
    week: int
    additions: int
    deletions: int


@dataclass
class CodeFrequency:
    recent: list[CodeFrequencyPoint] = field(default_factory=list)
    total_additions: int = 0
    total_deletions: int = 0


@dataclass
class MostActiveDay:
    day: int = 0
    name: str = "Sunday"
    total: int = 0


@dataclass
class CommitStats:
    total_commits: int = 0
    avg_weekly_commits: int = 0
    most_active_day: MostActiveDay = field(default_factory=MostActiveDay)


@dataclass
class PullRequestStats:
    """Turnaround of the most recently closed pull requests."""

    analyzed: int = 0
    merged: int = 0
    avg_merge_hours: float = 0.0
    median_merge_hours: float = 0.0


@dataclass
class IssueStats:
    """Turnaround of the most recently closed issues."""

    open: int = 0
    closed: int = 0
    avg_close_hours: float = 0.0
    median_close_hours: float = 0.0


@dataclass
class AnalysisReport:
    repository: RepositoryRef
    metadata: RepositoryFacts
    languages: dict[str, float] = field(default_factory=dict)
    language_bytes: dict[str, int] = field(default_factory=dict)
    contributors: list[ContributorRecord] = field(default_factory=list)
    commit_activity: list[WeeklyCommitActivity] = field(default_factory=list)
    code_frequency: CodeFrequency = field(default_factory=CodeFrequency)
    punch_card: list[list[int]] = field(default_factory=list)
    commit_stats: CommitStats = field(default_factory=CommitStats)
    pull_requests: PullRequestStats = field(default_factory=PullRequestStats)
    issues: IssueStats = field(default_factory=IssueStats)
    # Sections that fell back to an empty value
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["repository"]["full_name"] = self.repository.full_name
        return data
