"""CLI entrypoint for repo-analyzer."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import BASE_URL, AnalyzerConfig
from .errors import AnalysisError, InvalidReference, UpstreamError


def _setup_logging(verbose: bool, debug: bool) -> None:
    """Route log records through rich on stderr."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    root_logger.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _describe_failure(target: str, exc: AnalysisError) -> str:
    cause = exc.cause
    if isinstance(cause, InvalidReference):
        return (
            f"Error: '{target}' is not a repository reference. "
            "Use owner/name or https://github.com/owner/name."
        )
    if isinstance(cause, UpstreamError):
        if cause.is_not_found:
            return f"Error: '{target}' not found. Check the owner/name."
        if cause.is_auth_failure:
            return "Error: Authentication failed. Check your --token or $GITHUB_TOKEN."
        if cause.status is None:
            return f"Error: Could not connect to GitHub API. {cause.message}"
        return f"Error: GitHub API returned {cause.status}."
    return f"Error: {exc.message}"


@click.command()
@click.argument("target")
@click.option(
    "--token",
    envvar="GITHUB_TOKEN",
    required=True,
    show_envvar=True,
    help="GitHub personal access token",
)
@click.option(
    "--api-url",
    envvar="GITHUB_API_URL",
    default=BASE_URL,
    show_default=True,
    help="GitHub (Enterprise) API base URL",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format (csv exports contributor data only)",
)
@click.option(
    "--output",
    "output_file",
    default=None,
    type=click.Path(),
    help="Save output to file instead of stdout",
)
@click.option(
    "--top-n", default=10, show_default=True, help="Number of top contributors to show"
)
@click.option(
    "--poll-attempts",
    default=6,
    show_default=True,
    type=click.IntRange(min=1),
    help="Attempts per /stats endpoint while GitHub is computing",
)
@click.option(
    "--poll-interval",
    default=2.0,
    show_default=True,
    type=click.FloatRange(min=0),
    help="Seconds between /stats attempts",
)
@click.option(
    "--timeout",
    "deadline",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Abort the whole analysis after this many seconds",
)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    default=False,
    help="Disable SSL verification (self-signed certs)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log progress")
@click.option("--debug", is_flag=True, default=False, help="Log every request")
@click.version_option(version=__version__)
def main(
    target: str,
    token: str,
    api_url: str,
    output_format: str,
    output_file: str | None,
    top_n: int,
    poll_attempts: int,
    poll_interval: float,
    deadline: float | None,
    no_ssl_verify: bool,
    verbose: bool,
    debug: bool,
) -> None:
    """Analyze a GitHub repository.

    \b
    TARGET can be:
      - owner/name:           repo-analyzer pallets/click
      - a repository URL:     repo-analyzer https://github.com/pallets/click

    \b
    Examples:
      repo-analyzer pallets/click --format json --output click.json
      repo-analyzer pallets/click --poll-attempts 10 --poll-interval 3
    """
    _setup_logging(verbose, debug)

    config = AnalyzerConfig(
        token=token,
        api_url=api_url,
        verify_ssl=not no_ssl_verify,
        poll_attempts=poll_attempts,
        poll_interval=poll_interval,
    )

    from .orchestrator import run

    try:
        asyncio.run(
            run(
                target,
                config,
                output_format=output_format.lower(),
                output_file=output_file,
                top_n=top_n,
                deadline=deadline,
            )
        )
    except AnalysisError as exc:
        click.echo(_describe_failure(target, exc), err=True)
        sys.exit(1)
    except asyncio.TimeoutError:
        click.echo(f"Error: Analysis did not finish within {deadline}s.", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
