"""
Account management commands for mailsweep.

Handles connecting, listing and deactivating Gmail accounts.
"""

import click

from ...cli_session import get_cli_session_manager
from ...config import get_vault
from ...database.models import Account, Message
from ...exceptions import MailsweepError
from ...provider.oauth import authorize_account, register_account
from ..utils import fail


@click.group()
def account():
    """Account management commands."""
    pass


@account.command('add')
@click.argument('user_email')
@click.option('--account-email', help='Mailbox address (defaults to USER_EMAIL)')
@click.option('--refresh-token', help='Existing OAuth refresh token; skips the browser consent flow')
def add_account(user_email, account_email, refresh_token):
    """
    Connect a Gmail account for a user.

    Without --refresh-token a browser window opens for Google consent.

    Example:
        mailsweep account add me@example.com
        mailsweep account add me@example.com --account-email work@gmail.com --refresh-token 1//0g...
    """
    if '@' not in user_email:
        fail("Invalid email address format")

    session_manager = get_cli_session_manager()
    try:
        with session_manager.get_session() as session:
            vault = get_vault()
            if refresh_token:
                new_account = register_account(
                    session, vault,
                    user_email=user_email,
                    account_email=account_email or user_email,
                    refresh_token=refresh_token,
                )
            else:
                click.echo("Opening browser for Google authorization...")
                new_account = authorize_account(session, vault, user_email)

            click.secho("✓ Account connected successfully", fg='green')
            click.echo(f"  Account: {new_account.email_address}")
            click.echo(f"  User: {user_email.lower()}")
    except MailsweepError as e:
        fail(str(e))


@account.command('list')
def list_accounts():
    """
    List all connected accounts.

    Example:
        mailsweep account list
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        accounts = session.query(Account).order_by(Account.id).all()

        if not accounts:
            click.echo("No accounts configured.")
            click.echo("Use 'mailsweep account add <email>' to connect one.")
            return

        click.echo(f"\n{'ID':<5} {'Email':<40} {'Status':<10} {'Messages':<10} {'Last Sync'}")
        click.echo("-" * 90)

        for acc in accounts:
            message_count = session.query(Message).filter_by(account_id=acc.id).count()
            status = 'active' if acc.is_active else 'inactive'
            last_sync = acc.last_synced_at.strftime('%Y-%m-%d %H:%M') if acc.last_synced_at else 'Never'
            click.echo(f"{acc.id:<5} {acc.email_address:<40} {status:<10} {message_count:<10} {last_sync}")
            if not acc.is_active and acc.deactivated_reason:
                click.echo(f"      reason: {acc.deactivated_reason}")


@account.command('deactivate')
@click.argument('email')
@click.option('--reason', default='deactivated by user', help='Reason recorded on the account')
def deactivate_account(email, reason):
    """
    Stop syncing an account without deleting its messages.

    Example:
        mailsweep account deactivate work@gmail.com
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        acc = session.query(Account).filter_by(email_address=email.lower()).first()
        if not acc:
            fail(f"Account {email} not found")

        acc.deactivate(reason)
        session.commit()
        click.secho(f"✓ Account {acc.email_address} deactivated", fg='green')
