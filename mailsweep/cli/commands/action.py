"""
Action commands for mailsweep.

Handles single and bulk unsubscribe plus the attempt history.
"""

import click

from ...cli_session import get_cli_session_manager
from ...database.models import Message, UnsubscribeAttempt
from ...exceptions import MailsweepError
from ...unsubscribe_executor.agent import UnsubscribeExecutor
from ...unsubscribe_executor.service import UnsubscribeService
from ..utils import build_queue, fail, parse_ids


def build_service(session, verbose=False) -> UnsubscribeService:
    """Unsubscribe service wired to a fresh request queue."""
    return UnsubscribeService(session, executor=UnsubscribeExecutor(queue=build_queue(verbose)))


@click.command('unsubscribe')
@click.option('--id', 'message_id', type=int, required=True, help='Message ID to unsubscribe from')
@click.option('--dry-run', is_flag=True, help='Show what would happen without executing')
@click.option('--verbose', '-v', is_flag=True, help='Show retries')
def unsubscribe(message_id, dry_run, verbose):
    """
    Unsubscribe from the sender of a message.

    Tries a plain request first, then a headless browser.

    Example:
        mailsweep unsubscribe --id 5
        mailsweep unsubscribe --id 5 --dry-run
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        message = session.query(Message).filter_by(id=message_id).first()
        if not message:
            fail(f"Message {message_id} not found")
        if not message.unsubscribe_target:
            fail(f"Message {message_id} has no unsubscribe link")

        if dry_run:
            click.echo("\n[DRY RUN] Would unsubscribe from:")
            click.echo(f"  ID: {message.id}")
            click.echo(f"  Sender: {message.sender}")
            click.echo(f"  Target: {message.unsubscribe_target}")
            click.echo(f"  Found via: {message.unsubscribe_method}")
            return

        click.echo(f"\nUnsubscribing from {message.sender}...")
        try:
            outcome = build_service(session, verbose).unsubscribe_message(message_id)
        except MailsweepError as e:
            fail(str(e))

        result = outcome.result
        for path in result.artifacts:
            click.echo(f"  Evidence: {path}")
        if result.success:
            click.secho(f"✓ {result.message} ({result.method})", fg='green')
            return
        if result.uncertain:
            click.secho(f"? Uncertain: {result.message}", fg='yellow')
        elif result.requires_manual_action:
            click.secho(f"✗ Manual action required: {result.message}", fg='red')
        else:
            click.secho(f"✗ {result.message}", fg='red')
        raise click.Abort()


@click.command('bulk-unsubscribe')
@click.argument('ids')
@click.option('--verbose', '-v', is_flag=True, help='Show retries')
def bulk_unsubscribe(ids, verbose):
    """
    Unsubscribe from several messages, one after another.

    IDS can be: single (5), comma-separated (1,2,3), or ranges (1-5)

    Example:
        mailsweep bulk-unsubscribe 1,3-5
    """
    try:
        message_ids = parse_ids(ids)
    except ValueError:
        fail(f"Invalid ID format: {ids}")

    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        report = build_service(session, verbose).bulk_unsubscribe(message_ids)

        for entry in report.results:
            if entry.success:
                click.secho(f"  ✓ {entry.message_id}: {entry.result.method}", fg='green')
            else:
                detail = entry.error or entry.result.reason
                click.secho(f"  ✗ {entry.message_id}: {detail}", fg='red')

        click.echo(
            f"\nRequested: {report.requested}  Succeeded: {report.succeeded}  "
            f"Failed: {report.failed}  Skipped: {report.skipped}"
        )


@click.command('attempts')
@click.option('--id', 'message_id', type=int, required=True, help='Message ID')
def attempts(message_id):
    """
    Show the unsubscribe attempt history of a message, latest first.

    Example:
        mailsweep attempts --id 5
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        message = session.query(Message).filter_by(id=message_id).first()
        if not message:
            fail(f"Message {message_id} not found")

        history = session.query(UnsubscribeAttempt).filter_by(message_id=message_id).order_by(
            UnsubscribeAttempt.attempted_at.desc(), UnsubscribeAttempt.id.desc()
        ).all()
        if not history:
            click.echo("No unsubscribe attempts.")
            return

        click.echo(f"\n{'ID':<5} {'Status':<10} {'Method':<14} {'Attempted':<20} {'Detail'}")
        click.echo("-" * 90)
        for attempt in history:
            attempted = attempt.attempted_at.strftime('%Y-%m-%d %H:%M:%S') if attempt.attempted_at else ''
            detail = attempt.error_message or attempt.evidence_path or ''
            click.echo(f"{attempt.id:<5} {attempt.status:<10} {attempt.method:<14} {attempted:<20} {detail}")
