"""
Bounded, retrying request queue for outbound provider calls.

One instance is constructed by whatever composes the sync coordinator and the
unsubscribe executor, and is shared by every account and worker thread.
"""

import logging
import socket
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

import requests
from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..exceptions import TransientNetworkError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

DEFAULT_CONCURRENCY = 5
READ_RETRIES = 3
WRITE_RETRIES = 2
RETRY_LOG_SIZE = 100


def is_transient_error(exc: BaseException) -> bool:
    """True for network and provider failures worth another attempt."""
    if isinstance(exc, TransientNetworkError):
        return True
    if isinstance(exc, HttpError):
        return exc.resp.status in RETRYABLE_STATUS_CODES
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(exc, (TransportError, socket.timeout, ConnectionError, TimeoutError)):
        return True
    return False


@dataclass(frozen=True)
class RetryEvent:
    """One failed attempt that will be retried."""

    description: str
    attempt: int
    retries_left: int
    error: str


class RequestQueue:
    """Bound concurrent outbound operations and retry transient failures."""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        read_retries: int = READ_RETRIES,
        write_retries: int = WRITE_RETRIES,
        min_backoff: float = 1.0,
        max_backoff: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[RetryEvent], None]] = None,
        retry_log_size: int = RETRY_LOG_SIZE
    ):
        """
        Initialize the queue.

        Args:
            concurrency: Maximum operations executing at once
            read_retries: Retries after the first attempt for read operations
            write_retries: Retries after the first attempt for mutating operations
            min_backoff: Lower bound of the exponential backoff window (seconds)
            max_backoff: Upper bound of the exponential backoff window (seconds)
            sleep: Sleep function used between attempts
            on_retry: Optional callback receiving a RetryEvent per retry
            retry_log_size: Number of most recent RetryEvents kept in retry_log
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.read_retries = read_retries
        self.write_retries = write_retries
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self._sleep = sleep
        self._on_retry = on_retry
        self._slots = threading.BoundedSemaphore(concurrency)
        self._lock = threading.Lock()
        self._active = 0
        self.peak_active = 0
        self.stats: Dict[str, int] = {'operations': 0, 'attempts': 0, 'retries': 0, 'failures': 0}
        self.retry_log: Deque[RetryEvent] = deque(maxlen=retry_log_size)

    @property
    def active(self) -> int:
        """Number of operations currently holding a slot."""
        return self._active

    def _count(self, key: str):
        with self._lock:
            self.stats[key] += 1

    def _run_in_slot(self, operation: Callable[[], Any]) -> Any:
        with self._slots:
            with self._lock:
                self._active += 1
                self.peak_active = max(self.peak_active, self._active)
                self.stats['attempts'] += 1
            try:
                return operation()
            finally:
                with self._lock:
                    self._active -= 1

    def enqueue(
        self,
        operation: Callable[[], Any],
        mutating: bool = False,
        retries: Optional[int] = None,
        description: str = 'operation'
    ) -> Any:
        """
        Run an operation under the concurrency bound with the retry policy.

        Args:
            operation: Zero-argument callable performing one outbound call
            mutating: Selects the mutating retry cap instead of the read cap
            retries: Explicit retry cap overriding both defaults
            description: Label used in diagnostics

        Returns:
            Whatever the operation returns

        Raises:
            The last error raised by the operation, unchanged, once retries are
            exhausted or the error is not transient.
        """
        if retries is None:
            retries = self.write_retries if mutating else self.read_retries
        total_attempts = retries + 1
        self._count('operations')

        def before_sleep(retry_state):
            exc = retry_state.outcome.exception()
            event = RetryEvent(
                description=description,
                attempt=retry_state.attempt_number,
                retries_left=total_attempts - retry_state.attempt_number,
                error=str(exc),
            )
            self._count('retries')
            with self._lock:
                self.retry_log.append(event)
            logger.warning(
                f"{description}: attempt {event.attempt} failed ({event.error}). "
                f"{event.retries_left} retries left."
            )
            if self._on_retry:
                self._on_retry(event)

        retryer = Retrying(
            retry=retry_if_exception(is_transient_error),
            wait=wait_exponential(multiplier=self.min_backoff, min=self.min_backoff, max=self.max_backoff),
            stop=stop_after_attempt(total_attempts),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retryer(self._run_in_slot, operation)
        except Exception:
            self._count('failures')
            raise
