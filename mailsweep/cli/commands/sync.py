"""
Sync commands for mailsweep.

Handles syncing one account on demand and the cron-style sync of all accounts.
"""

import json

import click

from ...cli_session import get_cli_session_manager
from ...config import get_vault
from ...database.models import Account
from ...email_processor.classifier import ClassificationOrchestrator
from ...email_processor.sync_coordinator import SyncCoordinator
from ...exceptions import MailsweepError
from ...provider.gmail_client import GmailProviderClient
from ...scheduler import default_coordinator_factory, run_scheduled_sync
from ..utils import build_queue, fail


@click.command('sync')
@click.option('--email', 'account_email', required=True, help='Account email address to sync')
@click.option('--limit', type=int, help='Maximum messages to fetch')
@click.option('--no-ai', is_flag=True, help='Skip classification and summaries')
@click.option('--no-archive', is_flag=True, help='Leave new messages in the Gmail inbox')
@click.option('--verbose', '-v', is_flag=True, help='Show retries')
def sync(account_email, limit, no_ai, no_archive, verbose):
    """
    Sync new messages for one account.

    Example:
        mailsweep sync --email work@gmail.com
        mailsweep sync --email work@gmail.com --limit 10 --no-archive
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        acc = session.query(Account).filter_by(email_address=account_email.lower()).first()
        if not acc:
            fail(f"Account {account_email} not found")

        coordinator = SyncCoordinator(
            session,
            GmailProviderClient(session, get_vault(), build_queue(verbose)),
            classifier=None if no_ai else ClassificationOrchestrator(),
            max_messages=limit,
            archive=not no_archive,
        )

        click.echo(f"Syncing {acc.email_address}...")
        try:
            outcome = coordinator.sync_account(acc.id)
        except MailsweepError as e:
            fail(str(e))

        click.secho(f"✓ Synced {outcome.new_messages} new messages", fg='green')
        click.echo(f"  Listed: {outcome.listed}")
        click.echo(f"  Already stored: {outcome.already_present + outcome.duplicates}")
        click.echo(f"  Processed with AI: {outcome.processed}")
        if outcome.fetch_errors:
            click.secho(f"  Fetch errors: {outcome.fetch_errors}", fg='yellow')
        if outcome.archive_failures:
            click.secho(f"  Archive failures: {outcome.archive_failures}", fg='yellow')


@click.command('sync-all')
@click.option('--secret', required=True, help='Shared trigger secret (CRON_SECRET)')
@click.option('--workers', type=int, help='Accounts synced concurrently')
def sync_all(secret, workers):
    """
    Sync every active account; prints a JSON report.

    Intended for cron. One account failing does not stop the others.

    Example:
        mailsweep sync-all --secret "$CRON_SECRET"
    """
    session_manager = get_cli_session_manager()
    try:
        report = run_scheduled_sync(
            secret,
            session_factory=session_manager.session_factory,
            coordinator_factory=default_coordinator_factory(build_queue()),
            workers=workers,
        )
    except MailsweepError as e:
        fail(str(e))

    click.echo(json.dumps(report, indent=2))
