"""
Category commands for mailsweep.

Categories are the candidate labels offered to the AI classifier.
"""

import click
from sqlalchemy.exc import IntegrityError

from ...cli_session import get_cli_session_manager
from ...database.models import Category, User
from ..utils import fail


@click.group()
def category():
    """Category management commands."""
    pass


@category.command('add')
@click.argument('user_email')
@click.argument('name')
@click.option('--description', default='', help='What belongs in this category (shown to the classifier)')
def add_category(user_email, name, description):
    """
    Add a classification category for a user.

    Example:
        mailsweep category add me@example.com Newsletters --description "Periodic digests"
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        user = session.query(User).filter_by(email=user_email.lower()).first()
        if not user:
            fail(f"User {user_email} not found")

        session.add(Category(user_id=user.id, name=name, description=description))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            fail(f"Category '{name}' already exists for {user_email}")

        count = session.query(Category).filter_by(user_id=user.id).count()
        click.secho(f"✓ Category '{name}' added", fg='green')
        if count < 2:
            click.secho("  Add at least one more category to enable classification", fg='yellow')


@category.command('list')
@click.argument('user_email')
def list_categories(user_email):
    """
    List a user's categories.

    Example:
        mailsweep category list me@example.com
    """
    session_manager = get_cli_session_manager()

    with session_manager.get_session() as session:
        user = session.query(User).filter_by(email=user_email.lower()).first()
        if not user:
            fail(f"User {user_email} not found")

        categories = session.query(Category).filter_by(user_id=user.id).order_by(Category.id).all()
        if not categories:
            click.echo("No categories defined.")
            return

        click.echo(f"\n{'ID':<5} {'Name':<25} {'Messages':<10} {'Description'}")
        click.echo("-" * 80)
        for cat in categories:
            click.echo(f"{cat.id:<5} {cat.name:<25} {len(cat.messages):<10} {cat.description or ''}")
