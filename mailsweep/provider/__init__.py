"""
Mail provider access: Gmail API client, OAuth and the shared request queue.
"""

from .request_queue import RequestQueue, RetryEvent, is_transient_error
from .gmail_client import GmailProviderClient, MailboxHandle, SCOPES

__all__ = [
    'RequestQueue', 'RetryEvent', 'is_transient_error',
    'GmailProviderClient', 'MailboxHandle', 'SCOPES',
]
