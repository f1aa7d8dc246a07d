"""GitHub REST API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import BASE_URL, AnalyzerConfig
from ..errors import UpstreamError

logger = logging.getLogger(__name__)

STATS_KINDS = ("commit_activity", "code_frequency", "punch_card", "contributors")


class GitHubClient:
    """Async GitHub REST API client returning ``(status, body)`` pairs."""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        user_agent: str = "repo-analyzer",
        timeout: float = 30.0,
        verify_ssl: bool = True,
        concurrency: int = 8,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": user_agent,
        }
        self._client = httpx.AsyncClient(
            base_url=base_url or BASE_URL,
            headers=headers,
            timeout=timeout,
            verify=verify_ssl,
        )
        self._semaphore = asyncio.Semaphore(concurrency)

    @classmethod
    def from_config(cls, config: AnalyzerConfig) -> GitHubClient:
        return cls(
            token=config.token,
            base_url=config.api_url,
            user_agent=config.user_agent,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
            concurrency=config.concurrency,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> tuple[int, Any]:
        """GET ``path`` and return the status code with the decoded JSON body.

        Any 2xx status (202 included) is returned to the caller; the body is
        ``None`` when the response has no content. Everything else raises
        UpstreamError.
        """
        async with self._semaphore:
            try:
                response = await self._client.get(path, params=params)
            except httpx.HTTPError as exc:
                raise UpstreamError(
                    f"Request to {path} failed: {exc}", path=path
                ) from exc

        status = response.status_code
        logger.debug("GET %s -> %d", path, status)
        if not 200 <= status < 300:
            raise UpstreamError(
                f"GitHub API returned {status} for {path}: {_error_message(response)}",
                status=status,
                path=path,
            )
        if status == 204 or not response.content:
            return status, None
        try:
            return status, response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Invalid JSON from {path}", status=status, path=path
            ) from exc

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        _, body = await self.get(path, params)
        return body

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        """Get repository metadata."""
        return await self._get_json(f"/repos/{owner}/{repo}") or {}

    async def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Get language breakdown (bytes) for a repository."""
        return await self._get_json(f"/repos/{owner}/{repo}/languages") or {}

    async def list_contributors(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """First page of contributors, most contributions first."""
        return await self._get_json(f"/repos/{owner}/{repo}/contributors") or []

    async def list_commits_by_author(
        self, owner: str, repo: str, author: str, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """First page of commits authored by ``author``."""
        return (
            await self._get_json(
                f"/repos/{owner}/{repo}/commits",
                params={"author": author, "per_page": per_page},
            )
            or []
        )

    async def list_closed_pull_requests(
        self, owner: str, repo: str, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Most recently closed pull requests (one page)."""
        return (
            await self._get_json(
                f"/repos/{owner}/{repo}/pulls",
                params={"state": "closed", "per_page": per_page},
            )
            or []
        )

    async def list_closed_issues(
        self, owner: str, repo: str, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """Most recently closed issues (one page).

        The issues API includes pull requests; callers filter them out.
        """
        return (
            await self._get_json(
                f"/repos/{owner}/{repo}/issues",
                params={"state": "closed", "per_page": per_page},
            )
            or []
        )

    @staticmethod
    def stats_path(owner: str, repo: str, kind: str) -> str:
        """Path of one of the lazily computed ``/stats/*`` endpoints."""
        if kind not in STATS_KINDS:
            raise ValueError(f"Unknown stats endpoint: {kind}")
        return f"/repos/{owner}/{repo}/stats/{kind}"


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or ""
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase or ""
