"""
Gmail API client with transparent access-token refresh.

Every outbound call, including the token refresh itself, is routed through
the shared RequestQueue.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional, Tuple

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from sqlalchemy.orm import Session

from ..config import Config, CredentialVault
from ..database.models import Account, utcnow
from ..exceptions import AccountInactiveError, AuthError, ConfigError, NotFoundError
from .request_queue import RequestQueue

logger = logging.getLogger(__name__)

SCOPES = [
    'https://www.googleapis.com/auth/gmail.readonly',
    'https://www.googleapis.com/auth/gmail.modify',
]

PAGE_SIZE = 100

# (access_token, expiry) for a refresh token
TokenRefresher = Callable[[str], Tuple[str, Optional[datetime]]]
# Gmail service resource for an access token
ServiceBuilder = Callable[[str], Any]


class MailboxHandle:
    """Operations on one authorized mailbox, each routed through the queue."""

    def __init__(self, service, queue: RequestQueue, account_email: str = ''):
        self.service = service
        self.queue = queue
        self.account_email = account_email

    def _messages(self):
        return self.service.users().messages()

    def list_message_ids(self, query: Optional[str] = None, max_results: Optional[int] = None) -> List[str]:
        """List message IDs matching the query, following pagination up to max_results."""
        ids: List[str] = []
        page_token: Optional[str] = None

        while True:
            kwargs: Dict[str, Any] = {'userId': 'me', 'maxResults': PAGE_SIZE}
            if max_results:
                kwargs['maxResults'] = min(PAGE_SIZE, max_results - len(ids))
            if query:
                kwargs['q'] = query
            if page_token:
                kwargs['pageToken'] = page_token

            resp = self.queue.enqueue(
                lambda: self._messages().list(**kwargs).execute(),
                description=f"list messages ({self.account_email})"
            )
            for msg in resp.get('messages', []) or []:
                ids.append(msg['id'])
                if max_results and len(ids) >= max_results:
                    return ids

            page_token = resp.get('nextPageToken')
            if not page_token:
                break

        return ids

    def get_message(self, message_id: str) -> Dict[str, Any]:
        """Fetch the full provider-native message."""
        return self.queue.enqueue(
            lambda: self._messages().get(userId='me', id=message_id, format='full').execute(),
            description=f"get message {message_id}"
        )

    def modify(self, message_id: str, add_labels: Optional[List[str]] = None,
               remove_labels: Optional[List[str]] = None) -> Dict[str, Any]:
        body = {
            'addLabelIds': add_labels or [],
            'removeLabelIds': remove_labels or [],
        }
        return self.queue.enqueue(
            lambda: self._messages().modify(userId='me', id=message_id, body=body).execute(),
            mutating=True,
            description=f"modify message {message_id}"
        )

    def archive(self, message_id: str) -> Dict[str, Any]:
        """Archive remotely (remove from INBOX)."""
        return self.modify(message_id, remove_labels=['INBOX'])

    def trash(self, message_id: str) -> Dict[str, Any]:
        return self.queue.enqueue(
            lambda: self._messages().trash(userId='me', id=message_id).execute(),
            mutating=True,
            description=f"trash message {message_id}"
        )


class GmailProviderClient:
    """Hands out valid mailbox handles for stored accounts."""

    def __init__(
        self,
        session: Session,
        vault: CredentialVault,
        queue: RequestQueue,
        token_refresher: Optional[TokenRefresher] = None,
        service_builder: Optional[ServiceBuilder] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize the provider client.

        Args:
            session: Database session holding the account records
            vault: Vault used to unseal/seal stored tokens
            queue: Shared request queue
            token_refresher: Override for the OAuth refresh call
            service_builder: Override for building the Gmail API resource
            clock: Returns the current naive-UTC time
        """
        self.session = session
        self.vault = vault
        self.queue = queue
        self.token_refresher = token_refresher or self._refresh_with_google
        self.service_builder = service_builder or self._build_service
        self.clock = clock

    def get_client(self, account_id: int) -> MailboxHandle:
        """
        Return a handle that is valid for the duration of the caller's work.

        Raises:
            NotFoundError: unknown account
            AccountInactiveError: account has been deactivated
            AuthError: the access token could not be refreshed
        """
        account = self.session.query(Account).filter_by(id=account_id).first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found", {'account_id': account_id})
        if not account.is_active:
            raise AccountInactiveError(
                f"Account {account.email_address} is inactive",
                {'reason': account.deactivated_reason or 'unknown'}
            )

        if account.access_token_expired(self.clock()):
            access_token = self._refresh(account)
        else:
            access_token = self.vault.unseal(account.access_token)

        return MailboxHandle(self.service_builder(access_token), self.queue, account.email_address)

    def _refresh(self, account: Account) -> str:
        refresh_token = self.vault.unseal(account.refresh_token)
        try:
            access_token, expiry = self.queue.enqueue(
                lambda: self.token_refresher(refresh_token),
                description=f"refresh token ({account.email_address})"
            )
        except ConfigError:
            raise
        except RefreshError as e:
            if 'invalid_grant' in str(e):
                account.deactivate('authorization revoked')
                self.session.commit()
                logger.warning(f"Deactivated {account.email_address}: authorization revoked")
            raise AuthError(
                f"Failed to refresh access token for {account.email_address}",
                {'error': type(e).__name__}
            ) from e
        except Exception as e:
            raise AuthError(
                f"Failed to refresh access token for {account.email_address}",
                {'error': type(e).__name__}
            ) from e

        # Persist the new pair together before it is used
        account.access_token = self.vault.seal(access_token)
        account.token_expires_at = expiry
        try:
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            raise AuthError(
                f"Failed to persist refreshed token for {account.email_address}"
            ) from e

        logger.info(f"Refreshed access token for {account.email_address}")
        return access_token

    @staticmethod
    def _refresh_with_google(refresh_token: str) -> Tuple[str, Optional[datetime]]:
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=Config.GOOGLE_TOKEN_URI,
            client_id=Config.require('GOOGLE_CLIENT_ID'),
            client_secret=Config.require('GOOGLE_CLIENT_SECRET'),
            scopes=SCOPES,
        )
        creds.refresh(Request())
        # google-auth reports expiry as naive UTC
        expiry = creds.expiry or (utcnow() + timedelta(hours=1))
        return creds.token, expiry

    @staticmethod
    def _build_service(access_token: str):
        creds = Credentials(token=access_token, scopes=SCOPES)
        http = google_auth_httplib2.AuthorizedHttp(
            creds, http=httplib2.Http(timeout=Config.PROVIDER_TIMEOUT)
        )
        return build('gmail', 'v1', http=http, cache_discovery=False)
