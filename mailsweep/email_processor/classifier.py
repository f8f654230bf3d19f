"""
AI classification and summarization of messages.

Malformed, missing or empty model output is a transient failure and is retried
with backoff; once the budget is spent the caller sees ClassificationError.
Assignments below the confidence threshold are dropped regardless of what
the model proposed.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import openai
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Config
from ..exceptions import ClassificationError
from .types import ClassificationResult

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7
CLASSIFY_BODY_PREFIX = 1000
SUMMARY_BODY_PREFIX = 1500
MAX_RETRIES = 3

CLASSIFY_SYSTEM_PROMPT = (
    'You are an email classification assistant. Analyze emails and categorize them '
    'accurately based on their content and the provided category descriptions.'
)
SUMMARY_SYSTEM_PROMPT = (
    'You are an email summarization assistant. Create brief, informative summaries '
    'that capture the essence of emails.'
)


class _RetryableOutput(Exception):
    """Model output unusable this time; try again."""


def _body_excerpt(body: str, limit: int) -> str:
    body = body or ''
    if len(body) > limit:
        return body[:limit] + '... (truncated)'
    return body


def _field(obj: Any, name: str, default: str = '') -> str:
    if isinstance(obj, dict):
        return obj.get(name) or default
    return getattr(obj, name, default) or default


class ClassificationOrchestrator:
    """Classify and summarize messages through the AI service."""

    def __init__(
        self,
        client: Optional[Any] = None,
        model: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
        min_backoff: float = 1.0,
        max_backoff: float = 5.0,
        threshold: float = CONFIDENCE_THRESHOLD,
        sleep: Callable[[float], None] = time.sleep
    ):
        self._client = client
        self.model = model or Config.OPENAI_MODEL
        self.max_retries = max_retries
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.threshold = threshold
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=Config.require('OPENAI_API_KEY'))
        return self._client

    def ensure_configured(self):
        """Raises ConfigError when no API key is available."""
        self.client

    def _with_retry(self, operation: Callable[[], Any], label: str) -> Any:
        def log_attempt(retry_state):
            retries_left = self.max_retries + 1 - retry_state.attempt_number
            logger.warning(
                f"{label} attempt {retry_state.attempt_number} failed "
                f"({retry_state.outcome.exception()}). {retries_left} retries left."
            )

        retryer = Retrying(
            retry=retry_if_exception_type((_RetryableOutput, openai.APIError)),
            wait=wait_exponential(multiplier=self.min_backoff, min=self.min_backoff, max=self.max_backoff),
            stop=stop_after_attempt(self.max_retries + 1),
            before_sleep=log_attempt,
            sleep=self._sleep,
        )
        try:
            return retryer(operation)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise ClassificationError(
                f"{label} failed after {self.max_retries + 1} attempts: {last}",
                {'model': self.model}
            ) from last

    def _complete(self, **kwargs) -> str:
        response = self.client.chat.completions.create(model=self.model, **kwargs)
        choices = getattr(response, 'choices', None) or []
        if not choices:
            raise _RetryableOutput("No choices in response")
        content = choices[0].message.content
        if not content or not content.strip():
            raise _RetryableOutput("Empty response from model")
        return content.strip()

    def classify(self, message: Any, categories: Sequence[Any]) -> ClassificationResult:
        """
        Pick the best category for a message.

        Args:
            message: Object or dict with subject, sender (or from) and body
            categories: Objects or dicts with id, name and description

        Returns:
            ClassificationResult; category_id is None below the threshold
        """
        if not categories:
            return ClassificationResult(category_id=None, confidence=0.0, reasoning='No categories')

        known_ids = {str(_field(c, 'id')): _field(c, 'id') for c in categories}
        category_lines = '\n'.join(
            f"ID: {_field(c, 'id')}, Name: {_field(c, 'name')}, Description: {_field(c, 'description')}"
            for c in categories
        )
        sender = _field(message, 'sender') or _field(message, 'from')
        prompt = (
            "Analyze this email and classify it into the most appropriate category.\n\n"
            "Email:\n"
            f"From: {sender}\n"
            f"Subject: {_field(message, 'subject')}\n"
            f"Body: {_body_excerpt(_field(message, 'body'), CLASSIFY_BODY_PREFIX)}\n\n"
            f"Categories:\n{category_lines}\n\n"
            "Return JSON with:\n"
            '{\n  "categoryId": "<category_id>" or null if no good match,\n'
            '  "confidence": <number between 0 and 1>,\n'
            '  "reasoning": "<brief explanation>"\n}'
        )

        def attempt() -> ClassificationResult:
            content = self._complete(
                messages=[
                    {'role': 'system', 'content': CLASSIFY_SYSTEM_PROMPT},
                    {'role': 'user', 'content': prompt},
                ],
                response_format={'type': 'json_object'},
                temperature=0.3,
            )
            return self._parse_classification(content, known_ids)

        return self._with_retry(attempt, 'Classification')

    def _parse_classification(self, content: str, known_ids: Dict[str, Any]) -> ClassificationResult:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise _RetryableOutput(f"Malformed JSON from model: {e}")
        if not isinstance(data, dict) or 'confidence' not in data:
            raise _RetryableOutput("Model output missing confidence")
        try:
            confidence = float(data['confidence'])
        except (TypeError, ValueError):
            raise _RetryableOutput("Model confidence is not a number")
        if not 0.0 <= confidence <= 1.0:
            raise _RetryableOutput(f"Model confidence out of range: {confidence}")

        raw_id = data.get('categoryId')
        proposed = known_ids.get(str(raw_id)) if raw_id is not None else None
        if raw_id is not None and proposed is None:
            logger.warning(f"Model proposed unknown category {raw_id!r}")

        category_id = proposed if confidence >= self.threshold else None
        return ClassificationResult(
            category_id=category_id,
            confidence=confidence,
            reasoning=str(data.get('reasoning') or ''),
            proposed_category_id=proposed,
        )

    def summarize(self, message: Any) -> str:
        """One or two sentence summary of a message."""
        sender = _field(message, 'sender') or _field(message, 'from')
        prompt = (
            "Summarize this email in 1-2 concise sentences. Focus on key information and action items.\n\n"
            f"From: {sender}\n"
            f"Subject: {_field(message, 'subject')}\n"
            f"Body: {_body_excerpt(_field(message, 'body'), SUMMARY_BODY_PREFIX)}"
        )

        def attempt() -> str:
            return self._complete(
                messages=[
                    {'role': 'system', 'content': SUMMARY_SYSTEM_PROMPT},
                    {'role': 'user', 'content': prompt},
                ],
                max_tokens=100,
                temperature=0.5,
            )

        return self._with_retry(attempt, 'Summarization')
