"""
Tests for the Gmail provider client, mailbox handle and account registration.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, Mock

import pytest
from google.auth.exceptions import RefreshError

from mailsweep.database.models import Account, utcnow
from mailsweep.exceptions import AccountInactiveError, AuthError, ConfigError, NotFoundError
from mailsweep.provider.gmail_client import GmailProviderClient, MailboxHandle
from mailsweep.provider.oauth import register_account


def make_client(session, vault, queue, refresher=None, clock=utcnow):
    built = []

    def service_builder(token):
        built.append(token)
        return MagicMock(name=f'service-{token}')

    client = GmailProviderClient(
        session, vault, queue,
        token_refresher=refresher or Mock(return_value=('fresh-access', utcnow() + timedelta(hours=1))),
        service_builder=service_builder,
        clock=clock,
    )
    client.built_tokens = built
    return client


class TestGetClient:

    def test_unknown_account(self, session, vault, queue):
        client = make_client(session, vault, queue)
        with pytest.raises(NotFoundError):
            client.get_client(999)

    def test_inactive_account(self, session, vault, queue, account):
        account.deactivate('limit violation')
        session.commit()
        client = make_client(session, vault, queue)
        with pytest.raises(AccountInactiveError):
            client.get_client(account.id)

    def test_valid_token_is_used_without_refresh(self, session, vault, queue, account):
        refresher = Mock()
        client = make_client(session, vault, queue, refresher=refresher)

        handle = client.get_client(account.id)

        assert isinstance(handle, MailboxHandle)
        assert client.built_tokens == ['access-token-1']
        refresher.assert_not_called()

    def test_expired_token_is_refreshed_and_persisted(self, session, vault, queue, account):
        account.token_expires_at = utcnow() - timedelta(minutes=1)
        session.commit()
        expiry = utcnow() + timedelta(hours=1)
        refresher = Mock(return_value=('fresh-access', expiry))
        client = make_client(session, vault, queue, refresher=refresher)

        client.get_client(account.id)

        refresher.assert_called_once_with('refresh-token-1')
        assert client.built_tokens == ['fresh-access']
        session.expire_all()
        stored = session.get(Account, account.id)
        assert vault.unseal(stored.access_token) == 'fresh-access'
        assert stored.access_token != 'fresh-access'
        assert stored.token_expires_at == expiry

    def test_expiry_equal_to_now_counts_as_expired(self, session, vault, queue, account):
        now = datetime(2024, 1, 1, 12, 0, 0)
        account.token_expires_at = now
        session.commit()
        refresher = Mock(return_value=('fresh-access', now + timedelta(hours=1)))
        client = make_client(session, vault, queue, refresher=refresher, clock=lambda: now)

        client.get_client(account.id)
        refresher.assert_called_once()

    def test_missing_access_token_is_refreshed(self, session, vault, queue, account):
        account.access_token = None
        session.commit()
        refresher = Mock(return_value=('fresh-access', None))
        client = make_client(session, vault, queue, refresher=refresher)

        client.get_client(account.id)
        refresher.assert_called_once()

    def test_refresh_failure_leaves_state_untouched(self, session, vault, queue, account):
        account.token_expires_at = utcnow() - timedelta(minutes=1)
        session.commit()
        old_sealed = account.access_token
        refresher = Mock(side_effect=RefreshError('temporarily unavailable'))
        client = make_client(session, vault, queue, refresher=refresher)

        with pytest.raises(AuthError):
            client.get_client(account.id)

        session.expire_all()
        stored = session.get(Account, account.id)
        assert stored.access_token == old_sealed
        assert stored.is_active

    def test_revoked_grant_deactivates_account(self, session, vault, queue, account):
        account.access_token = None
        session.commit()
        refresher = Mock(side_effect=RefreshError('invalid_grant: Token has been expired or revoked.'))
        client = make_client(session, vault, queue, refresher=refresher)

        with pytest.raises(AuthError):
            client.get_client(account.id)

        session.expire_all()
        stored = session.get(Account, account.id)
        assert not stored.is_active
        assert stored.deactivated_reason == 'authorization revoked'

    def test_missing_oauth_client_config_is_config_error(self, session, vault, queue, account):
        account.access_token = None
        session.commit()
        refresher = Mock(side_effect=ConfigError('GOOGLE_CLIENT_ID is not configured'))
        client = make_client(session, vault, queue, refresher=refresher)

        with pytest.raises(ConfigError):
            client.get_client(account.id)


class TestMailboxHandle:

    def make_handle(self, queue, pages):
        service = MagicMock()
        service.users.return_value.messages.return_value.list.return_value.execute.side_effect = pages
        return MailboxHandle(service, queue, 'inbox@gmail.com'), service

    def test_list_follows_pagination(self, queue):
        handle, service = self.make_handle(queue, [
            {'messages': [{'id': 'a'}, {'id': 'b'}], 'nextPageToken': 'p2'},
            {'messages': [{'id': 'c'}]},
        ])

        ids = handle.list_message_ids(query='after:1 -label:spam')

        assert ids == ['a', 'b', 'c']
        list_calls = service.users.return_value.messages.return_value.list.call_args_list
        assert list_calls[0].kwargs['q'] == 'after:1 -label:spam'
        assert list_calls[1].kwargs['pageToken'] == 'p2'

    def test_list_stops_at_max_results(self, queue):
        handle, _ = self.make_handle(queue, [
            {'messages': [{'id': 'a'}, {'id': 'b'}, {'id': 'c'}], 'nextPageToken': 'p2'},
        ])
        assert handle.list_message_ids(max_results=2) == ['a', 'b']

    def test_empty_mailbox(self, queue):
        handle, _ = self.make_handle(queue, [{'resultSizeEstimate': 0}])
        assert handle.list_message_ids() == []

    def test_archive_removes_inbox_label(self, queue):
        service = MagicMock()
        handle = MailboxHandle(service, queue)

        handle.archive('m1')

        modify = service.users.return_value.messages.return_value.modify
        modify.assert_called_once_with(
            userId='me', id='m1', body={'addLabelIds': [], 'removeLabelIds': ['INBOX']}
        )

    def test_get_message_requests_full_format(self, queue):
        service = MagicMock()
        service.users.return_value.messages.return_value.get.return_value.execute.return_value = {'id': 'm1'}
        handle = MailboxHandle(service, queue)

        assert handle.get_message('m1') == {'id': 'm1'}
        service.users.return_value.messages.return_value.get.assert_called_once_with(
            userId='me', id='m1', format='full'
        )


class TestRegisterAccount:

    def test_creates_user_and_seals_tokens(self, session, vault):
        account = register_account(session, vault, 'Me@Example.com', 'Work@Gmail.com', 'refresh-xyz')

        assert account.email_address == 'work@gmail.com'
        assert account.user.email == 'me@example.com'
        assert account.refresh_token != 'refresh-xyz'
        assert vault.unseal(account.refresh_token) == 'refresh-xyz'
        assert account.access_token is None
        assert account.is_active

    def test_reactivates_existing_account(self, session, vault, account):
        account.deactivate('authorization revoked')
        session.commit()

        again = register_account(session, vault, 'owner@example.com', 'inbox@gmail.com', 'refresh-new')

        assert again.id == account.id
        assert again.is_active
        assert again.deactivated_reason is None
        assert vault.unseal(again.refresh_token) == 'refresh-new'

    def test_missing_refresh_token(self, session, vault):
        with pytest.raises(AuthError):
            register_account(session, vault, 'me@example.com', 'work@gmail.com', None)

    def test_account_owned_by_other_user(self, session, vault, account):
        with pytest.raises(AuthError):
            register_account(session, vault, 'someone-else@example.com', 'inbox@gmail.com', 'refresh')
