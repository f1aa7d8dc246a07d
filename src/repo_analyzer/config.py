"""Runtime configuration for a repo-analyzer run."""

from __future__ import annotations

from dataclasses import dataclass

from . import __version__

BASE_URL = "https://api.github.com"


@dataclass(frozen=True)
class AnalyzerConfig:
    """Settings fixed for the lifetime of one client and its analyses."""

    token: str
    api_url: str = BASE_URL
    user_agent: str = f"repo-analyzer/{__version__}"
    timeout: float = 30.0
    verify_ssl: bool = True
    concurrency: int = 8
    # /stats/* polling
    poll_attempts: int = 6
    poll_interval: float = 2.0
    top_contributors: int = 10
    commits_per_author: int = 100
    recent_code_frequency: int = 12
