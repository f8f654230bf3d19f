"""
Main CLI group for mailsweep.

Integrates all command groups into a single CLI application.
"""

import click

from .. import __version__
from ..config import Config, load_config_from_env_file
from ..email_processor.logging import configure_logging
from .commands.account import account
from .commands.action import attempts, bulk_unsubscribe, unsubscribe
from .commands.admin import generate_key, init
from .commands.category import category
from .commands.sync import sync, sync_all


@click.group()
@click.version_option(version=__version__, prog_name='mailsweep')
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level):
    """
    mailsweep - Sync, classify and unsubscribe from Gmail mail.

    Pulls new messages, files them into your categories with an AI
    classifier, and unsubscribes from senders on request.
    """
    load_config_from_env_file()
    configure_logging(log_level or Config.LOG_LEVEL)


# Register command groups
cli.add_command(account, name='account')
cli.add_command(category, name='category')

# Register standalone commands
cli.add_command(init, name='init')
cli.add_command(generate_key, name='generate-key')
cli.add_command(sync, name='sync')
cli.add_command(sync_all, name='sync-all')
cli.add_command(unsubscribe, name='unsubscribe')
cli.add_command(bulk_unsubscribe, name='bulk-unsubscribe')
cli.add_command(attempts, name='attempts')


if __name__ == '__main__':
    cli()
