"""
Tier 1: plain HTTP GET against the unsubscribe target.

Succeeds only when the response is 2xx and its body carries a recognizable
confirmation phrase. Anything else is handed to Tier 2, except non-HTTP
targets (mailto and the like), which need a human.
"""

from typing import Optional

import requests

from ..config import Config
from ..email_processor.constants import SUCCESS_PATTERNS, USER_AGENT, matches_any
from ..email_processor.unsubscribe_detector import is_http_url
from ..provider.request_queue import RequestQueue
from .base_executor import UnsubscribeTier
from .state_machine import Outcome, TierOutcome


class HttpGetTier(UnsubscribeTier):
    """Execute unsubscribe requests via HTTP GET."""

    def __init__(
        self,
        queue: Optional[RequestQueue] = None,
        timeout: Optional[int] = None,
        user_agent: str = USER_AGENT,
        http_get=requests.get
    ):
        """
        Initialize HTTP GET tier.

        Args:
            queue: Shared request queue; requests are not retried within a tier
            timeout: Request timeout in seconds
            user_agent: User-Agent header for requests
            http_get: Callable with the requests.get signature
        """
        super().__init__()
        self.queue = queue
        self.timeout = timeout or Config.REQUEST_TIMEOUT
        self.user_agent = user_agent
        self._http_get = http_get

    @property
    def tier_name(self) -> str:
        return 'tier1'

    def _get(self, target: str):
        def request():
            return self._http_get(
                target,
                headers={'User-Agent': self.user_agent},
                timeout=self.timeout,
                allow_redirects=True
            )

        if self.queue is None:
            return request()
        return self.queue.enqueue(request, retries=0, description=f"GET {target}")

    def _perform_attempt(self, target: str, attempt_id: str) -> TierOutcome:
        if not is_http_url(target):
            return TierOutcome(
                Outcome.UNSUPPORTED,
                f"Unsupported unsubscribe scheme: {target.split(':', 1)[0]}",
            )

        try:
            response = self._get(target)
        except requests.exceptions.Timeout:
            return TierOutcome(
                Outcome.HTTP_FAILURE,
                f"Request timed out after {self.timeout} seconds",
            )
        except requests.exceptions.RequestException as e:
            return TierOutcome(Outcome.HTTP_FAILURE, f"Connection error: {e}")

        if not 200 <= response.status_code < 300:
            return TierOutcome(
                Outcome.HTTP_FAILURE,
                f"HTTP {response.status_code}",
                detail=str(response.status_code),
            )

        if matches_any(SUCCESS_PATTERNS, response.text or ''):
            return TierOutcome(Outcome.CONFIRMED, 'Successfully unsubscribed via HTTP request')
        return TierOutcome(Outcome.INCONCLUSIVE, 'Request completed but no confirmation was shown')

    def _fault_outcome(self, error: Exception) -> TierOutcome:
        return TierOutcome(Outcome.HTTP_FAILURE, f"Unexpected error: {error}", detail=str(error))
