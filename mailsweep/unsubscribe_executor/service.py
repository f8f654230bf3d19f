"""
Unsubscribe service: attempt bookkeeping around the executor.

Every invocation creates a pending UnsubscribeAttempt before any outbound
work and moves it to a terminal status afterwards, including when the
executor itself crashes.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..config import Config
from ..database.models import Message, UnsubscribeAttempt, utcnow
from ..database.store import MessageStore
from ..exceptions import MailsweepError
from .agent import UnsubscribeExecutor
from .state_machine import State, UnsubscribeResult

logger = logging.getLogger(__name__)


class NoUnsubscribeTargetError(MailsweepError):
    """The message has no unsubscribe target to act on."""


@dataclass
class MessageUnsubscribeOutcome:
    """Per-message entry of an unsubscribe run."""

    message_id: int
    attempt_id: Optional[int] = None
    result: Optional[UnsubscribeResult] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success

    @property
    def used_browser(self) -> bool:
        return self.result is not None and State.TIER2_ATTEMPT in self.result.history

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'messageId': self.message_id,
            'attemptId': self.attempt_id,
            'success': self.success,
        }
        if self.result is not None:
            data.update({
                'method': self.result.method,
                'message': self.result.message,
                'reason': self.result.reason,
                'artifacts': list(self.result.artifacts),
            })
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class BulkUnsubscribeReport:
    """Totals of a bulk unsubscribe run."""

    requested: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[MessageUnsubscribeOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.succeeded > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'requested': self.requested,
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'results': [r.to_dict() for r in self.results],
        }


class UnsubscribeService:
    """Run unsubscribe attempts for stored messages and record them."""

    def __init__(
        self,
        session: Session,
        executor: Optional[UnsubscribeExecutor] = None,
        delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the service.

        Args:
            session: Database session
            executor: Tiered executor; one with default tiers is built if omitted
            delay: Seconds to wait between successive browser attempts in bulk runs
            sleep: Sleep function used for that delay
        """
        self.session = session
        self.store = MessageStore(session)
        self.executor = executor or UnsubscribeExecutor()
        self.delay = Config.BULK_UNSUBSCRIBE_DELAY if delay is None else delay
        self._sleep = sleep

    def _start_attempt(self, message: Message) -> UnsubscribeAttempt:
        attempt = UnsubscribeAttempt(
            message_id=message.id,
            status='pending',
            method=message.unsubscribe_method or 'link',
        )
        self.session.add(attempt)
        self.session.commit()
        return attempt

    def _finish_attempt(self, attempt: UnsubscribeAttempt, status: str, method: Optional[str],
                        error_message: Optional[str], evidence_path: Optional[str]):
        attempt.status = status
        if method:
            attempt.method = method
        attempt.error_message = error_message
        attempt.evidence_path = evidence_path
        attempt.completed_at = utcnow()
        self.session.commit()

    def unsubscribe_message(self, message_id: int) -> MessageUnsubscribeOutcome:
        """
        Run one unsubscribe attempt for a stored message.

        Raises:
            NotFoundError: no such message
            NoUnsubscribeTargetError: the message has no target
        """
        message = self.store.get_message(message_id)
        if not message.unsubscribe_target:
            raise NoUnsubscribeTargetError(
                f"Message {message_id} has no unsubscribe target", {'message_id': message_id}
            )

        attempt = self._start_attempt(message)
        logger.info(f"Unsubscribe attempt {attempt.id} started for message {message_id}")
        try:
            result = self.executor.execute(message.unsubscribe_target, str(attempt.id))
        except Exception as e:
            logger.error(f"Unsubscribe attempt {attempt.id} crashed: {e}")
            self.session.rollback()
            self._finish_attempt(attempt, 'failed', None, str(e) or type(e).__name__, None)
            raise

        self._finish_attempt(
            attempt,
            result.status,
            result.method,
            None if result.success else (result.reason or result.message),
            result.evidence_path,
        )
        logger.info(f"Unsubscribe attempt {attempt.id} finished: {result.status} via {result.method}")
        return MessageUnsubscribeOutcome(message_id=message_id, attempt_id=attempt.id, result=result)

    def bulk_unsubscribe(self, message_ids: Sequence[int]) -> BulkUnsubscribeReport:
        """
        Unsubscribe from several messages, one after another.

        Messages without a target (or missing entirely) are skipped. A fixed
        delay separates an attempt that needed the browser from the next one.
        """
        report = BulkUnsubscribeReport(requested=len(message_ids))
        previous_used_browser = False

        for message_id in message_ids:
            message = self.session.query(Message).filter_by(id=message_id).first()
            if message is None or not message.unsubscribe_target:
                report.skipped += 1
                logger.info(f"Skipping message {message_id}: no unsubscribe target")
                continue

            if previous_used_browser and self.delay > 0:
                self._sleep(self.delay)

            try:
                outcome = self.unsubscribe_message(message_id)
            except Exception as e:
                latest = self.store.latest_attempt(message_id)
                outcome = MessageUnsubscribeOutcome(
                    message_id=message_id,
                    attempt_id=latest.id if latest else None,
                    error=str(e),
                )
                # A crash may have happened anywhere in the browser path
                previous_used_browser = True
            else:
                previous_used_browser = outcome.used_browser

            report.processed += 1
            if outcome.success:
                report.succeeded += 1
            else:
                report.failed += 1
            report.results.append(outcome)

        logger.info(
            f"Bulk unsubscribe completed: {report.succeeded} succeeded, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        return report
