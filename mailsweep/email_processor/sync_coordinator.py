"""
Per-account sync: list, dedup, fetch, normalize, detect, classify, persist, archive.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError as DuplicateKeyError
from sqlalchemy.orm import Session

from ..config import Config
from ..database.models import Account, Message, utcnow
from ..database.store import MessageStore
from ..exceptions import ClassificationError, ConfigError
from ..provider.gmail_client import GmailProviderClient, MailboxHandle
from .classifier import ClassificationOrchestrator
from .normalizer import MessageNormalizer
from .types import DetectionResult, NormalizedMessage
from .unsubscribe_detector import UnsubscribeDetector

logger = logging.getLogger(__name__)

# Classification needs at least this many candidate labels to be meaningful
MIN_CATEGORIES = 2


def build_sync_query(after: datetime) -> str:
    """Provider search query for messages received after a naive-UTC time."""
    epoch = int((after - datetime(1970, 1, 1)).total_seconds())
    return f"after:{epoch} -label:spam -label:trash"


def _chunks(items: Sequence[str], size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class SyncOutcome:
    """What one account sync did."""

    account_id: int
    account_email: str
    listed: int = 0
    already_present: int = 0
    new_messages: int = 0
    processed: int = 0
    duplicates: int = 0
    fetch_errors: int = 0
    ingest_errors: int = 0
    archived: int = 0
    archive_failures: int = 0
    watermark: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account': self.account_email,
            'status': 'success',
            'newEmails': self.new_messages,
            'processed': self.processed,
            'skipped': self.already_present + self.duplicates,
            'fetchErrors': self.fetch_errors,
            'ingestErrors': self.ingest_errors,
            'archiveFailures': self.archive_failures,
        }


class SyncCoordinator:
    """Drive one account's sync end to end."""

    def __init__(
        self,
        session: Session,
        provider: GmailProviderClient,
        classifier: Optional[ClassificationOrchestrator] = None,
        normalizer: Optional[MessageNormalizer] = None,
        detector: Optional[UnsubscribeDetector] = None,
        max_messages: Optional[int] = None,
        batch_size: Optional[int] = None,
        lookback_hours: Optional[int] = None,
        archive: bool = True,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize the coordinator.

        Args:
            session: Database session owned by this account's sync
            provider: Gmail client factory (shares the process-wide queue)
            classifier: AI classifier; classification is skipped when None
            normalizer: Message normalizer
            detector: Unsubscribe detector
            max_messages: Cap on ids listed per sync
            batch_size: Ids per local existence check
            lookback_hours: Window used when the account was never synced
            archive: Archive new messages remotely after persisting them
            clock: Returns the current naive-UTC time
        """
        self.session = session
        self.store = MessageStore(session)
        self.provider = provider
        self.classifier = classifier
        self.normalizer = normalizer or MessageNormalizer()
        self.detector = detector or UnsubscribeDetector()
        self.max_messages = max_messages or Config.MAX_EMAILS_PER_SYNC
        self.batch_size = batch_size or Config.DEFAULT_BATCH_SIZE
        self.lookback_hours = lookback_hours or Config.SYNC_LOOKBACK_HOURS
        self.archive = archive
        self._clock = clock

    def watermark_for(self, account: Account, now: datetime) -> datetime:
        """Last successful sync time, or the lookback window on first run."""
        if account.last_synced_at:
            return account.last_synced_at
        return now - timedelta(hours=self.lookback_hours)

    def detect_unsubscribe(self, normalized: NormalizedMessage) -> DetectionResult:
        """
        Header tier first; a mailto header loses to an HTTP link found in the body.
        """
        result = self.detector.detect(normalized.body, normalized.headers)
        if result.method == 'header' and not result.is_http:
            body_result = self.detector.detect_from_body(normalized.body)
            if body_result.found:
                return body_result
        return result

    def sync_account(self, account_id: int) -> SyncOutcome:
        """
        Sync one account.

        Raises:
            NotFoundError, AccountInactiveError, AuthError: from the provider
            client; nothing has been written in that case.
        """
        started_at = self._clock()
        handle = self.provider.get_client(account_id)
        account = self.store.get_account(account_id)
        outcome = SyncOutcome(account_id=account.id, account_email=account.email_address)

        classifier = self._usable_classifier()
        categories = self.store.categories_for_user(account.user_id)
        classify = classifier is not None and len(categories) >= MIN_CATEGORIES
        if classifier is not None and not classify:
            logger.info(f"{account.email_address}: fewer than {MIN_CATEGORIES} categories, skipping classification")

        after = self.watermark_for(account, started_at)
        ids = handle.list_message_ids(query=build_sync_query(after), max_results=self.max_messages)
        outcome.listed = len(ids)
        logger.info(f"{account.email_address}: {len(ids)} messages since {after.isoformat()}")

        for batch in _chunks(ids, self.batch_size):
            existing = self.store.existing_external_ids(batch)
            outcome.already_present += len(existing)
            for external_id in batch:
                if external_id in existing:
                    continue
                self._ingest(handle, account, external_id, classifier,
                             categories if classify else None, outcome)

        account.last_synced_at = started_at
        self.session.commit()
        outcome.watermark = started_at
        logger.info(
            f"{account.email_address}: synced {outcome.new_messages} new messages "
            f"({outcome.processed} processed with AI)"
        )
        return outcome

    def _usable_classifier(self) -> Optional[ClassificationOrchestrator]:
        if self.classifier is None:
            return None
        try:
            self.classifier.ensure_configured()
        except ConfigError as e:
            logger.warning(f"AI enrichment disabled for this sync: {e}")
            return None
        return self.classifier

    def _ingest(self, handle: MailboxHandle, account: Account, external_id: str,
                classifier: Optional[ClassificationOrchestrator],
                categories: Optional[List[Any]], outcome: SyncOutcome):
        try:
            raw = handle.get_message(external_id)
        except Exception as e:
            outcome.fetch_errors += 1
            outcome.errors.append(f"{external_id}: {e}")
            logger.error(f"Failed to fetch message {external_id}: {e}")
            return

        try:
            message, enriched = self._build_message(account, raw, classifier, categories)
            self.store.persist_message(message)
        except DuplicateKeyError:
            outcome.duplicates += 1
            logger.info(f"Message {external_id} stored concurrently, skipping")
            return
        except Exception as e:
            self.session.rollback()
            outcome.ingest_errors += 1
            outcome.errors.append(f"{external_id}: {e}")
            logger.error(f"Failed to ingest message {external_id}: {e}")
            return
        outcome.new_messages += 1
        if enriched:
            outcome.processed += 1

        if self.archive:
            try:
                handle.archive(external_id)
            except Exception as e:
                outcome.archive_failures += 1
                logger.warning(f"Failed to archive message {external_id}: {e}")
            else:
                message.archived = True
                self.session.commit()
                outcome.archived += 1

    def _build_message(self, account: Account, raw: Dict[str, Any],
                       classifier: Optional[ClassificationOrchestrator],
                       categories: Optional[List[Any]]):
        normalized = self.normalizer.normalize(raw)
        detection = self.detect_unsubscribe(normalized)

        message = Message(
            account_id=account.id,
            external_id=normalized.external_id,
            subject=normalized.subject,
            sender=normalized.sender,
            body=normalized.body,
            body_truncated=normalized.body_truncated,
            received_at=normalized.received_at,
            unsubscribe_target=detection.target,
            unsubscribe_method=detection.method,
        )
        enriched = classifier is not None and self._enrich(classifier, message, normalized, categories)
        return message, enriched

    def _enrich(self, classifier: ClassificationOrchestrator, message: Message,
                normalized: NormalizedMessage, categories: Optional[List[Any]]) -> bool:
        """Classify and summarize in place; failures leave the fields null."""
        enriched = False
        if categories:
            try:
                result = classifier.classify(normalized, categories)
            except ClassificationError as e:
                logger.warning(f"Classification failed for {normalized.external_id}: {e}")
            else:
                message.category_id = result.category_id
                message.classification_confidence = result.confidence
                enriched = True

        try:
            message.summary = classifier.summarize(normalized)
            enriched = True
        except ClassificationError as e:
            logger.warning(f"Summarization failed for {normalized.external_id}: {e}")
        return enriched
