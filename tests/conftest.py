"""
Shared fixtures: in-memory database, vault, seeded user/account, Gmail payloads.
"""

import base64
from datetime import timedelta

import pytest

from mailsweep.config import CredentialVault, generate_master_key
from mailsweep.database import DatabaseManager
from mailsweep.database.models import Account, Category, User, utcnow
from mailsweep.provider.request_queue import RequestQueue


@pytest.fixture
def db_manager():
    """Fresh in-memory database with all tables."""
    manager = DatabaseManager('sqlite:///:memory:')
    manager.initialize_database()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def session(db_manager):
    session = db_manager.get_session()
    yield session
    session.close()


@pytest.fixture
def vault():
    """Vault with a throwaway key; low iteration count keeps tests fast."""
    return CredentialVault(generate_master_key(), iterations=1000)


@pytest.fixture
def queue():
    """Request queue that never really sleeps."""
    return RequestQueue(sleep=lambda seconds: None)


@pytest.fixture
def user(session):
    user = User(email='owner@example.com')
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def account(session, user, vault):
    """Active account with a valid (unexpired) access token."""
    account = Account(
        user_id=user.id,
        email_address='inbox@gmail.com',
        refresh_token=vault.seal('refresh-token-1'),
        access_token=vault.seal('access-token-1'),
        token_expires_at=utcnow() + timedelta(hours=1),
    )
    session.add(account)
    session.commit()
    return account


@pytest.fixture
def categories(session, user):
    newsletters = Category(user_id=user.id, name='Newsletters', description='Periodic digests')
    receipts = Category(user_id=user.id, name='Receipts', description='Order confirmations')
    session.add_all([newsletters, receipts])
    session.commit()
    return [newsletters, receipts]


def encode_part(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii').rstrip('=')


@pytest.fixture
def make_raw_message():
    """Factory for Gmail API messages in format=full."""
    def factory(external_id, subject='Hello', sender='News <news@example.com>',
                html='<p>Hi</p>', extra_headers=None, internal_date='1700000000000'):
        headers = [
            {'name': 'Subject', 'value': subject},
            {'name': 'From', 'value': sender},
            {'name': 'Date', 'value': 'Tue, 14 Nov 2023 22:13:20 +0000'},
        ]
        for name, value in (extra_headers or {}).items():
            headers.append({'name': name, 'value': value})
        return {
            'id': external_id,
            'internalDate': internal_date,
            'payload': {
                'mimeType': 'multipart/alternative',
                'headers': headers,
                'parts': [
                    {'mimeType': 'text/plain', 'body': {'data': encode_part('plain text')}},
                    {'mimeType': 'text/html', 'body': {'data': encode_part(html)}},
                ],
            },
        }
    return factory
