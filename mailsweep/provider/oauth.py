"""
OAuth2 authorization-code flow and account registration.
"""

import logging
from datetime import datetime
from typing import Optional

from google_auth_oauthlib.flow import InstalledAppFlow
from sqlalchemy.orm import Session

from ..config import Config, CredentialVault
from ..database.models import Account, User
from ..exceptions import AuthError
from .gmail_client import SCOPES

logger = logging.getLogger(__name__)


def build_oauth_flow() -> InstalledAppFlow:
    """Build an installed-app flow from the configured OAuth client."""
    client_config = {
        'installed': {
            'client_id': Config.require('GOOGLE_CLIENT_ID'),
            'client_secret': Config.require('GOOGLE_CLIENT_SECRET'),
            'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
            'token_uri': Config.GOOGLE_TOKEN_URI,
        }
    }
    return InstalledAppFlow.from_client_config(client_config, SCOPES)


def register_account(
    session: Session,
    vault: CredentialVault,
    user_email: str,
    account_email: str,
    refresh_token: Optional[str],
    access_token: Optional[str] = None,
    expires_at: Optional[datetime] = None
) -> Account:
    """
    Create or reactivate an account after a successful authorization.

    The refresh token is sealed before it touches the session.
    """
    if not refresh_token:
        raise AuthError(
            "Authorization did not return a refresh token",
            {'account': account_email}
        )

    user = session.query(User).filter_by(email=user_email.lower()).first()
    if not user:
        user = User(email=user_email.lower())
        session.add(user)
        session.flush()

    account = session.query(Account).filter_by(email_address=account_email.lower()).first()
    if account is None:
        account = Account(user_id=user.id, email_address=account_email.lower(), provider='gmail')
        session.add(account)
    elif account.user_id != user.id:
        raise AuthError(
            f"{account_email} is already connected to another user",
            {'account': account_email}
        )

    account.refresh_token = vault.seal(refresh_token)
    account.access_token = vault.seal(access_token) if access_token else None
    account.token_expires_at = expires_at
    account.is_active = True
    account.deactivated_reason = None
    session.commit()

    logger.info(f"Registered account {account.email_address} for {user.email}")
    return account


def authorize_account(session: Session, vault: CredentialVault, user_email: str) -> Account:
    """Run the browser consent flow and register the authorized mailbox."""
    flow = build_oauth_flow()
    creds = flow.run_local_server(port=0, access_type='offline', prompt='consent')
    service_profile = flow.authorized_session().get(
        'https://gmail.googleapis.com/gmail/v1/users/me/profile',
        timeout=Config.PROVIDER_TIMEOUT
    ).json()
    return register_account(
        session, vault,
        user_email=user_email,
        account_email=service_profile.get('emailAddress', user_email),
        refresh_token=creds.refresh_token,
        access_token=creds.token,
        expires_at=creds.expiry,
    )
