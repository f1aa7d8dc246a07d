"""Polling for GitHub's lazily computed ``/stats/*`` endpoints."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

from .client import GitHubClient

logger = logging.getLogger(__name__)

HTTP_ACCEPTED = 202


class PollState(enum.Enum):
    PENDING = "pending"
    READY = "ready"
    EXHAUSTED = "exhausted"


class StatsPoller:
    """Re-issues a read while GitHub answers 202 (statistics still computing).

    The interval between attempts is fixed and there is no sleep after the
    last attempt, so the longest wait is ``(max_attempts - 1) * interval``.
    Running out of attempts is not an error: the body falls back to an
    empty list so the report can still be built from the remaining sections.
    """

    def __init__(
        self, client: GitHubClient, max_attempts: int = 6, interval: float = 2.0
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._interval = interval

    async def poll(
        self,
        path: str,
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> tuple[PollState, Any]:
        """Poll ``path`` and return the terminal state with the body.

        The state is READY or EXHAUSTED; an EXHAUSTED poll carries ``[]``.
        UpstreamError from the client propagates unchanged.
        """
        attempts = self._max_attempts if max_attempts is None else max_attempts
        delay = self._interval if interval is None else interval

        state = PollState.PENDING
        body: Any = None
        attempt = 0
        while state is PollState.PENDING:
            if attempt >= attempts:
                state = PollState.EXHAUSTED
                continue
            attempt += 1
            status, body = await self._client.get(path)
            if status != HTTP_ACCEPTED:
                state = PollState.READY
            elif attempt < attempts:
                logger.info(
                    "%s: stats computing (attempt %d/%d), retry in %ss",
                    path,
                    attempt,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)

        if state is PollState.EXHAUSTED:
            logger.warning(
                "%s: stats still computing after %d attempts, skipping",
                path,
                attempts,
            )
            return state, []
        # 204 No Content (empty repository) or a null body
        return state, body if body is not None else []

    async def poll_until_ready(
        self,
        path: str,
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> Any:
        """Poll ``path`` and return only the body."""
        _, body = await self.poll(path, max_attempts, interval)
        return body
