"""
Common utilities for CLI commands.

Shared helper functions used across multiple command modules.
"""

import click

from ..config import Config
from ..provider.request_queue import RequestQueue, RetryEvent


def parse_ids(id_string: str) -> list:
    """
    Parse message IDs from various formats.

    Supports:
        - Single ID: "5"
        - Comma-separated: "1,2,3"
        - Ranges: "1-5"
        - Mixed: "1,3-5,7"

    Returns:
        List of integer IDs, duplicates removed, order kept
    """
    ids = []
    for part in id_string.split(','):
        part = part.strip()
        if not part:
            continue
        if '-' in part:
            start, end = part.split('-', 1)
            ids.extend(range(int(start), int(end) + 1))
        else:
            ids.append(int(part))
    return list(dict.fromkeys(ids))


def build_queue(verbose: bool = False) -> RequestQueue:
    """Request queue for one CLI invocation; retries are echoed when verbose."""
    def report_retry(event: RetryEvent):
        click.secho(
            f"  ↻ {event.description}: attempt {event.attempt} failed, {event.retries_left} retries left",
            fg='yellow'
        )

    return RequestQueue(
        concurrency=Config.QUEUE_CONCURRENCY,
        on_retry=report_retry if verbose else None
    )


def fail(message: str):
    """Print an error and abort the command."""
    click.secho(f"✗ Error: {message}", fg='red')
    raise click.Abort()
