"""
Admin commands for mailsweep.

Handles database initialization and key generation.
"""

import click

from ...config import generate_master_key
from ...database import init_database


@click.command('init')
def init():
    """
    Initialize the database.

    Creates the database schema and required tables.

    Example:
        mailsweep init
    """
    try:
        db_manager = init_database()
        click.secho("✓ Database initialized successfully", fg='green')
        click.echo(f"Database location: {db_manager.database_url}")
    except Exception as e:
        click.secho(f"✗ Error initializing database: {e}", fg='red')
        raise click.Abort()


@click.command('generate-key')
def generate_key():
    """
    Generate a master key for the credential vault.

    Store the printed value in ENCRYPTION_KEY. Tokens sealed with one key
    cannot be read with another.

    Example:
        mailsweep generate-key
    """
    click.echo(generate_master_key())
