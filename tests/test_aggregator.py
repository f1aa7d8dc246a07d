"""Tests for the aggregator module."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from repo_analyzer.aggregator import (
    build_punch_card,
    build_timeline,
    close_durations,
    closed_issues_only,
    language_percentages,
    line_totals,
    merge_durations,
    most_active_day,
    recent_code_frequency,
    analyze_repository,
    summarize_commits,
    week_index,
    week_start,
    weekly_activity,
)
from repo_analyzer.config import AnalyzerConfig
from repo_analyzer.errors import AnalysisError, InvalidReference, UpstreamError
from repo_analyzer.github.client import GitHubClient

BASE = "/repos/org/repo"


class Sequence:
    """Successive answers for one route."""

    def __init__(self, *responses):
        self.responses = list(responses)

    def next(self):
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]


class FakeGitHubClient(GitHubClient):
    """GitHubClient whose transport is a route table."""

    def __init__(self, routes):
        super().__init__(token="test-token")
        self.routes = routes
        self.calls = []

    async def get(self, path, params=None):
        self.calls.append((path, params))
        key = path
        if params and "author" in params:
            key = f"{path}?author={params['author']}"
        answer = self.routes.get(key, (200, []))
        if isinstance(answer, Sequence):
            answer = answer.next()
        if isinstance(answer, Exception):
            raise answer
        return answer


class DelayedGitHubClient(FakeGitHubClient):
    """FakeGitHubClient that suspends before answering selected routes."""

    def __init__(self, routes, delays):
        super().__init__(routes)
        self.delays = delays
        self.finished = []

    async def get(self, path, params=None):
        key = path
        if params and "author" in params:
            key = f"{path}?author={params['author']}"
        await asyncio.sleep(self.delays.get(key, 0))
        answer = await super().get(path, params)
        self.finished.append(key)
        return answer


def _commit(date):
    return {"sha": date, "commit": {"author": {"date": date}}}


@pytest.fixture
def routes():
    return {
        BASE: (200, {
            "name": "repo",
            "description": "A test repo",
            "stargazers_count": 10,
            "forks_count": 3,
            "watchers_count": 10,
            "open_issues_count": 4,
            "created_at": "2023-01-01T00:00:00Z",
            "updated_at": "2024-06-01T00:00:00Z",
            "language": "X",
            "default_branch": "main",
            "size": 1024,
        }),
        f"{BASE}/languages": (200, {"X": 80, "Y": 20}),
        f"{BASE}/contributors": (200, [
            {"login": "alice", "contributions": 2, "id": 1, "type": "User"},
            {"login": "bob", "contributions": 5, "id": 2, "type": "User"},
        ]),
        f"{BASE}/commits?author=alice": (200, [
            _commit("2024-06-03T10:30:00Z"),
            _commit("2024-06-05T14:00:00Z"),
        ]),
        f"{BASE}/commits?author=bob": (200, [
            _commit("2024-06-03T10:30:00Z"),
            _commit("2024-06-05T14:00:00Z"),
            _commit("2024-06-07T09:00:00Z"),
        ]),
        f"{BASE}/stats/commit_activity": (200, [
            {"week": 1717200000, "total": 3, "days": [0, 1, 2, 0, 0, 0, 0]},
            {"week": 1717804800, "total": 2, "days": [0, 0, 0, 2, 0, 0, 0]},
        ]),
        f"{BASE}/stats/code_frequency": (200, [
            [1717200000 + i * 604800, 10 * i, -i] for i in range(15)
        ]),
        f"{BASE}/stats/punch_card": (200, [[1, 10, 3], [2, 14, 2]]),
        f"{BASE}/stats/contributors": (200, [
            {"author": {"login": "alice"}, "total": 2,
             "weeks": [{"w": 1717200000, "a": 100, "d": 50, "c": 2}]},
            {"author": {"login": "bob"}, "total": 3,
             "weeks": [{"w": 1717200000, "a": 40, "d": 20, "c": 3},
                       {"w": 1717804800, "a": 5, "d": 1, "c": 0}]},
        ]),
        f"{BASE}/pulls": (200, [
            {"created_at": "2024-01-01T00:00:00Z", "merged_at": "2024-01-02T00:00:00Z"},
            {"created_at": "2024-01-01T00:00:00Z", "merged_at": "2024-01-03T00:00:00Z"},
            {"created_at": "2024-01-01T00:00:00Z", "merged_at": None},
        ]),
        f"{BASE}/issues": (200, [
            {"created_at": "2024-02-01T00:00:00Z", "closed_at": "2024-02-01T06:00:00Z"},
            {"created_at": "2024-02-01T00:00:00Z", "closed_at": "2024-02-01T12:00:00Z"},
            {"created_at": "2024-02-01T00:00:00Z", "closed_at": "2024-02-05T00:00:00Z",
             "pull_request": {"url": "..."}},
        ]),
    }


@pytest.fixture
def config():
    return AnalyzerConfig(token="test-token", poll_interval=0)


@pytest.mark.asyncio
async def test_analyze_repository(routes, config):
    client = FakeGitHubClient(routes)
    report = await analyze_repository(client, "https://github.com/org/repo", config)

    assert report.repository.full_name == "org/repo"
    assert report.metadata.stars == 10
    assert report.metadata.language == "X"
    assert report.metadata.size == 1024
    assert report.languages == {"X": 80.0, "Y": 20.0}
    assert report.language_bytes == {"X": 80, "Y": 20}

    # bob has more commits in the timeline despite listing order
    assert [c.login for c in report.contributors] == ["bob", "alice"]
    bob, alice = report.contributors
    assert bob.total_commits == 3
    assert bob.contributions == 5
    assert (bob.additions, bob.deletions) == (45, 21)
    assert (alice.additions, alice.deletions) == (100, 50)

    assert report.code_frequency.total_additions == 145
    assert report.code_frequency.total_deletions == 71
    assert len(report.code_frequency.recent) == 12
    assert report.code_frequency.recent[-1].additions == 140

    assert report.commit_stats.total_commits == 5
    assert report.commit_stats.avg_weekly_commits == 3  # 2.5 rounds up
    assert report.commit_stats.most_active_day.day == 1
    assert report.commit_stats.most_active_day.name == "Monday"

    assert len(report.punch_card) == 7
    assert report.punch_card[1][10] == 3

    assert report.pull_requests.analyzed == 3
    assert report.pull_requests.merged == 2

    assert report.issues.open == 4
    assert report.issues.closed == 2
    assert report.issues.avg_close_hours == 9.0
    assert report.issues.median_close_hours == 9.0
    assert report.degraded == []


@pytest.mark.asyncio
async def test_scenario_a_language_percentages(routes, config):
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert report.metadata.stars == 10
    assert report.languages == {"X": 80.00, "Y": 20.00}


@pytest.mark.asyncio
async def test_scenario_b_single_week_timeline(routes, config):
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    alice = next(c for c in report.contributors if c.login == "alice")
    assert len(alice.timeline) == 1
    assert alice.timeline[0].commits == 2
    assert alice.total_commits == 2


@pytest.mark.asyncio
async def test_scenario_c_merge_hours(routes, config):
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert report.pull_requests.avg_merge_hours == 36.0
    assert report.pull_requests.median_merge_hours == 36.0


@pytest.mark.asyncio
async def test_scenario_d_stats_never_ready(routes, config):
    routes[f"{BASE}/stats/commit_activity"] = (202, {})
    client = FakeGitHubClient(routes)

    with patch("repo_analyzer.github.poller.asyncio.sleep", new_callable=AsyncMock):
        report = await analyze_repository(client, "org/repo", config)

    assert report.commit_activity == []
    assert report.commit_stats.total_commits == 0
    assert report.commit_stats.avg_weekly_commits == 0
    assert report.degraded == ["stats/commit_activity"]
    polls = [p for p, _ in client.calls if p.endswith("/stats/commit_activity")]
    assert len(polls) == 6


@pytest.mark.asyncio
async def test_stats_ready_after_computing(routes, config):
    routes[f"{BASE}/stats/punch_card"] = Sequence((202, {}), (202, {}), (200, [[0, 0, 9]]))
    with patch("repo_analyzer.github.poller.asyncio.sleep", new_callable=AsyncMock):
        report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert report.punch_card[0][0] == 9
    assert report.commit_stats.most_active_day.day == 0
    assert report.degraded == []


@pytest.mark.asyncio
async def test_scenario_e_reference_forms(routes, config):
    a = await analyze_repository(FakeGitHubClient(routes), "https://host/org/repo/", config)
    b = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert a.repository == b.repository


@pytest.mark.asyncio
async def test_invalid_reference_makes_no_calls(routes, config):
    client = FakeGitHubClient(routes)
    with pytest.raises(AnalysisError) as excinfo:
        await analyze_repository(client, "just-a-name", config)
    assert isinstance(excinfo.value.cause, InvalidReference)
    assert client.calls == []


@pytest.mark.asyncio
async def test_required_read_failure_aborts(routes, config):
    routes[BASE] = UpstreamError("GitHub API returned 404", status=404, path=BASE)
    client = FakeGitHubClient(routes)
    with pytest.raises(AnalysisError) as excinfo:
        await analyze_repository(client, "org/repo", config)
    assert excinfo.value.cause.status == 404
    assert excinfo.value.__cause__ is excinfo.value.cause
    # phase 2 never started
    assert not any("/commits" in p for p, _ in client.calls)


@pytest.mark.asyncio
async def test_first_failure_in_declaration_order(routes, config):
    routes[f"{BASE}/languages"] = UpstreamError("languages", status=500)
    routes[f"{BASE}/contributors"] = UpstreamError("contributors", status=502)
    with pytest.raises(AnalysisError) as excinfo:
        await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert excinfo.value.cause.status == 500


@pytest.mark.asyncio
async def test_closed_listing_failure_aborts(routes, config):
    routes[f"{BASE}/issues"] = UpstreamError("GitHub API returned 403", status=403)
    with pytest.raises(AnalysisError) as excinfo:
        await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert excinfo.value.cause.is_auth_failure


@pytest.mark.asyncio
async def test_polled_endpoint_error_aborts(routes, config):
    routes[f"{BASE}/stats/contributors"] = UpstreamError("boom", status=500)
    with pytest.raises(AnalysisError):
        await analyze_repository(FakeGitHubClient(routes), "org/repo", config)


@pytest.mark.asyncio
async def test_contributor_failure_is_isolated(routes, config):
    routes[f"{BASE}/commits?author=alice"] = UpstreamError("timeout")
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)

    bob, alice = report.contributors
    assert bob.login == "bob"
    assert bob.total_commits == 3
    assert alice.timeline == []
    assert alice.total_commits == 0
    # line stats still attached to the degraded contributor
    assert alice.additions == 100
    assert report.degraded == ["timeline[0]:alice"]


@pytest.mark.asyncio
async def test_contributors_matched_when_finishing_out_of_order(routes, config):
    routes[f"{BASE}/commits?author=alice"] = (200, [_commit("2024-06-03T10:30:00Z")])
    client = DelayedGitHubClient(routes, {f"{BASE}/commits?author=alice": 0.05})
    report = await analyze_repository(client, "org/repo", config)

    finished = client.finished
    assert finished.index(f"{BASE}/commits?author=bob") < finished.index(
        f"{BASE}/commits?author=alice"
    )
    records = {c.login: c for c in report.contributors}
    assert records["alice"].total_commits == 1
    assert [w.commits for w in records["alice"].timeline] == [1]
    assert records["alice"].additions == 100
    assert records["bob"].total_commits == 3
    assert sum(w.commits for w in records["bob"].timeline) == 3
    assert records["bob"].additions == 45


@pytest.mark.asyncio
async def test_stats_matched_when_finishing_out_of_order(routes, config):
    client = DelayedGitHubClient(routes, {f"{BASE}/stats/commit_activity": 0.05})
    report = await analyze_repository(client, "org/repo", config)
    assert client.finished[-1] == f"{BASE}/stats/commit_activity"
    assert report.punch_card[1][10] == 3
    assert [w.total for w in report.commit_activity] == [3, 2]


@pytest.mark.asyncio
async def test_unexpected_error_waits_for_sibling_branches(routes, config):
    routes[f"{BASE}/languages"] = RuntimeError("bug")
    client = DelayedGitHubClient(routes, {f"{BASE}/contributors": 0.05})
    with pytest.raises(RuntimeError):
        await analyze_repository(client, "org/repo", config)
    assert f"{BASE}/contributors" in client.finished


@pytest.mark.asyncio
async def test_malformed_punch_card_entry_skipped(routes, config):
    routes[f"{BASE}/stats/punch_card"] = (200, [[None, 1, 2], [1, 1, 4]])
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert report.punch_card[1][1] == 4
    assert sum(map(sum, report.punch_card)) == 4


@pytest.mark.asyncio
async def test_malformed_commit_degrades_contributor(routes, config):
    routes[f"{BASE}/commits?author=bob"] = (200, [{"sha": "x", "commit": {}}])
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    bob = next(c for c in report.contributors if c.login == "bob")
    assert bob.timeline == []
    assert report.degraded == ["timeline[1]:bob"]


@pytest.mark.asyncio
async def test_only_top_contributors_fetched(routes):
    routes[f"{BASE}/contributors"] = (200, [
        {"login": f"user{i}", "contributions": 100 - i} for i in range(15)
    ])
    client = FakeGitHubClient(routes)
    report = await analyze_repository(client, "org/repo", AnalyzerConfig(token="t"))
    commit_calls = [p for p in client.calls if p[0].endswith("/commits")]
    assert len(commit_calls) == 10
    assert len(report.contributors) == 10
    assert {c.login for c in report.contributors} == {f"user{i}" for i in range(10)}


@pytest.mark.asyncio
async def test_ties_keep_listing_order(routes, config):
    routes[f"{BASE}/contributors"] = (200, [
        {"login": "carol"}, {"login": "dave"}, {"login": "erin"},
    ])
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    # nobody has commits in the route table: stable order
    assert [c.login for c in report.contributors] == ["carol", "dave", "erin"]
    assert all(c.additions == 0 and c.deletions == 0 for c in report.contributors)


@pytest.mark.asyncio
async def test_empty_repository(config):
    routes = {
        BASE: (200, {"name": "repo"}),
        f"{BASE}/languages": (200, {}),
        f"{BASE}/contributors": (204, None),
        f"{BASE}/stats/commit_activity": (204, None),
        f"{BASE}/stats/code_frequency": (204, None),
        f"{BASE}/stats/punch_card": (204, None),
        f"{BASE}/stats/contributors": (204, None),
    }
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    assert report.languages == {}
    assert report.contributors == []
    assert report.punch_card == [[0] * 24 for _ in range(7)]
    assert report.commit_stats.total_commits == 0
    assert report.pull_requests.avg_merge_hours == 0
    assert report.issues.median_close_hours == 0
    assert report.degraded == []


@pytest.mark.asyncio
async def test_report_to_dict(routes, config):
    report = await analyze_repository(FakeGitHubClient(routes), "org/repo", config)
    data = report.to_dict()
    assert data["repository"] == {"owner": "org", "name": "repo", "full_name": "org/repo"}
    assert data["commit_stats"]["most_active_day"]["name"] == "Monday"
    assert data["contributors"][0]["timeline"][0]["date"].endswith("Z")


# Reductions


def test_language_percentages_empty():
    assert language_percentages({}) == {}


@pytest.mark.parametrize(
    "lang_bytes",
    [
        {"A": 1},
        {"A": 1, "B": 1, "C": 1},
        {"A": 12345, "B": 678, "C": 9, "D": 1},
        {"A": 0, "B": 7},
    ],
)
def test_language_percentages_sum_to_100(lang_bytes):
    pct = language_percentages(lang_bytes)
    assert abs(sum(pct.values()) - 100) <= 0.01 * len(pct)


def test_language_percentages_two_decimals():
    assert language_percentages({"A": 1, "B": 2}) == {"A": 33.33, "B": 66.67}


def test_week_index_and_start():
    moment = datetime(2024, 6, 3, 10, 30, tzinfo=timezone.utc)
    assert week_index(moment) == 2839
    assert week_start(2839) == "2024-05-30T00:00:00Z"


def test_build_timeline_ascending_and_unique():
    timeline = build_timeline([
        _commit("2024-06-20T00:00:00Z"),
        _commit("2024-06-03T10:30:00Z"),
        _commit("2024-06-21T00:00:00Z"),
        _commit("2024-06-05T14:00:00Z"),
    ])
    weeks = [w.week for w in timeline]
    assert weeks == sorted(set(weeks))
    assert [w.commits for w in timeline] == [2, 2]
    assert sum(w.commits for w in timeline) == 4


def test_build_timeline_bad_date():
    with pytest.raises(ValueError):
        build_timeline([_commit("yesterday")])


@pytest.mark.parametrize("size", [0, 1, 50, 168, 500])
def test_punch_card_shape(size):
    entries = [[i % 7, i % 24, i] for i in range(size)]
    matrix = build_punch_card(entries)
    assert len(matrix) == 7
    assert all(len(row) == 24 for row in matrix)


def test_punch_card_defaults_to_zero():
    matrix = build_punch_card([[3, 5, 7]])
    assert matrix[3][5] == 7
    assert sum(map(sum, matrix)) == 7


def test_punch_card_last_write_wins():
    matrix = build_punch_card([[2, 9, 4], [2, 9, 1]])
    assert matrix[2][9] == 1


def test_punch_card_ignores_out_of_range_and_malformed():
    matrix = build_punch_card([
        [7, 0, 5], [0, 24, 5], [-1, 0, 5], [1, 2], None,
        [None, 1, 2], ["1", 1, 2], [1.5, 1, 2], [True, 1, 2], [1, 1, None],
    ])
    assert sum(map(sum, matrix)) == 0
    assert len(matrix) == 7


def test_most_active_day_tie_keeps_lowest_index():
    totals = [5, 5, 3, 0, 0, 0, 0]
    matrix = [[t] + [0] * 23 for t in totals]
    best = most_active_day(matrix)
    assert best.day == 0
    assert best.total == 5


def test_most_active_day_all_zero():
    best = most_active_day([[0] * 24 for _ in range(7)])
    assert best.day == 0
    assert best.total == 0


def test_line_totals_missing_fields_and_null_author():
    by_login, additions, deletions = line_totals([
        {"author": {"login": "alice"}, "weeks": [{"a": 3}, {"d": 2}, {}]},
        {"author": None, "weeks": [{"a": 10, "d": 10}]},
        {"author": {"login": "bob"}},
    ])
    assert by_login == {"alice": (3, 2), "bob": (0, 0)}
    assert (additions, deletions) == (13, 12)


def test_merge_durations_skip_unmerged_and_bad_dates():
    hours = merge_durations([
        {"created_at": "2024-01-01T00:00:00Z", "merged_at": "2024-01-01T01:30:00Z"},
        {"created_at": "2024-01-01T00:00:00Z", "merged_at": None},
        {"created_at": None, "merged_at": "2024-01-01T01:30:00Z"},
    ])
    assert hours == [1.5]


def test_closed_issues_exclude_pull_requests():
    issues = [{"id": 1}, {"id": 2, "pull_request": {}}]
    assert closed_issues_only(issues) == [{"id": 1}]


def test_close_durations():
    assert close_durations([
        {"created_at": "2024-01-01T00:00:00Z", "closed_at": "2024-01-02T00:00:00Z"},
        {"created_at": "2024-01-01T00:00:00Z"},
    ]) == [24.0]


def test_summarize_commits_rounds_half_up():
    activity = weekly_activity([{"total": 1}, {"total": 2}, {"total": 2}, {"total": 1}])
    stats = summarize_commits(activity, [[0] * 24 for _ in range(7)])
    assert stats.total_commits == 6
    assert stats.avg_weekly_commits == 2  # 1.5 -> 2


def test_weekly_activity_preserves_order():
    raw = [{"week": 3, "total": 1}, {"week": 1, "total": 4}]
    assert [w.week for w in weekly_activity(raw)] == [3, 1]


def test_recent_code_frequency():
    raw = [[i, i, -i] for i in range(20)]
    recent = recent_code_frequency(raw, 12)
    assert [p.week for p in recent] == list(range(8, 20))
    assert recent[0].deletions == -8
    assert recent_code_frequency([], 12) == []
