"""
"Sync all active accounts" entry point for cron-style triggers.

Accounts sync concurrently in a thread pool. Each worker owns its database
session; the request queue is shared by all of them.
"""

import hmac
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from .config import Config, CredentialVault, get_vault
from .database import get_db_manager
from .database.store import MessageStore
from .email_processor.classifier import ClassificationOrchestrator
from .email_processor.sync_coordinator import SyncCoordinator, SyncOutcome
from .exceptions import AuthError, ConfigError
from .provider.gmail_client import GmailProviderClient
from .provider.request_queue import RequestQueue

logger = logging.getLogger(__name__)

CoordinatorFactory = Callable[[Session], SyncCoordinator]


def verify_secret(provided: Optional[str], expected: Optional[str] = None):
    """
    Check a trigger secret in constant time.

    Raises:
        ConfigError: no secret is configured
        AuthError: provided secret does not match
    """
    expected = Config.CRON_SECRET if expected is None else expected
    if not expected:
        raise ConfigError("CRON_SECRET is not configured", {'setting': 'CRON_SECRET'})
    if not provided or not hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8')):
        raise AuthError("Invalid cron secret")


def default_coordinator_factory(
    queue: RequestQueue,
    vault: Optional[CredentialVault] = None,
    classifier: Optional[ClassificationOrchestrator] = None
) -> CoordinatorFactory:
    """Build coordinators that share one queue, vault and classifier."""
    vault = vault or get_vault()
    classifier = classifier or ClassificationOrchestrator()

    def factory(session: Session) -> SyncCoordinator:
        provider = GmailProviderClient(session, vault, queue)
        return SyncCoordinator(session, provider, classifier=classifier)

    return factory


def _sync_one(account_id: int, account_email: str, session_factory: Callable[[], Session],
              coordinator_factory: CoordinatorFactory) -> Dict[str, Any]:
    session = session_factory()
    try:
        outcome: SyncOutcome = coordinator_factory(session).sync_account(account_id)
        return outcome.to_dict()
    except Exception as e:
        session.rollback()
        logger.error(f"Error syncing account {account_email}: {e}")
        return {'account': account_email, 'status': 'error', 'error': str(e)}
    finally:
        session.close()


def run_scheduled_sync(
    secret: Optional[str],
    session_factory: Optional[Callable[[], Session]] = None,
    coordinator_factory: Optional[CoordinatorFactory] = None,
    queue: Optional[RequestQueue] = None,
    workers: Optional[int] = None,
    expected_secret: Optional[str] = None
) -> Dict[str, Any]:
    """
    Sync every active account and report per-account outcomes.

    One account failing (revoked authorization, provider outage) is recorded
    in the report and does not stop the others.
    """
    verify_secret(secret, expected_secret)

    session_factory = session_factory or get_db_manager().get_session
    if coordinator_factory is None:
        queue = queue or RequestQueue(concurrency=Config.QUEUE_CONCURRENCY)
        coordinator_factory = default_coordinator_factory(queue)

    listing_session = session_factory()
    try:
        accounts = [(a.id, a.email_address) for a in MessageStore(listing_session).active_accounts()]
    finally:
        listing_session.close()

    report: Dict[str, Any] = {
        'success': True,
        'accountsProcessed': len(accounts),
        'totalNewEmails': 0,
        'totalProcessed': 0,
        'results': [],
        'errors': [],
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    if not accounts:
        logger.info("No active accounts to sync")
        return report

    logger.info(f"Syncing {len(accounts)} active accounts")
    max_workers = max(1, min(workers or Config.SYNC_WORKERS, len(accounts)))
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='sync') as pool:
        futures = [
            pool.submit(_sync_one, account_id, email, session_factory, coordinator_factory)
            for account_id, email in accounts
        ]
        results: List[Dict[str, Any]] = [future.result() for future in futures]

    for result in results:
        report['results'].append(result)
        if result['status'] == 'error':
            report['errors'].append(f"{result['account']}: {result['error']}")
            continue
        report['totalNewEmails'] += result['newEmails']
        report['totalProcessed'] += result['processed']

    logger.info(
        f"Sync complete: {report['totalNewEmails']} new emails, "
        f"{report['totalProcessed']} processed with AI, {len(report['errors'])} errors"
    )
    return report
