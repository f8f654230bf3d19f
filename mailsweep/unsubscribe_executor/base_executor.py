"""
Base class for unsubscribe tiers.

A tier performs one kind of attempt (plain HTTP request, browser click) and
reports what it saw as a TierOutcome. Unexpected errors inside a tier are
converted into the tier's fault outcome so the state machine always advances.
"""

from abc import ABC, abstractmethod

from ..email_processor.logging import StructuredLogger
from .state_machine import TierOutcome


class UnsubscribeTier(ABC):
    """Abstract base class for all unsubscribe tiers."""

    def __init__(self):
        self.logger = StructuredLogger(f"unsubscribe.{self.tier_name}")

    @property
    @abstractmethod
    def tier_name(self) -> str:
        """Return the tier name (tier1, tier2)."""

    def attempt(self, target: str, attempt_id: str) -> TierOutcome:
        """
        Run the tier against target (template method).

        Args:
            target: Unsubscribe URI
            attempt_id: Attempt identifier, used to file artifacts

        Returns:
            TierOutcome describing what happened
        """
        with self.logger.scoped_context({'attempt_id': attempt_id, 'target': target}):
            try:
                outcome = self._perform_attempt(target, attempt_id)
            except Exception as e:
                self.logger.log_exception(e)
                outcome = self._fault_outcome(e)
            self.logger.info(f"{self.tier_name} outcome: {outcome.kind.value}", {'message': outcome.message})
            self.logger.log_operation_count(self.tier_name, outcome.kind.value == 'confirmed')
            return outcome

    @abstractmethod
    def _perform_attempt(self, target: str, attempt_id: str) -> TierOutcome:
        """Tier-specific work."""

    @abstractmethod
    def _fault_outcome(self, error: Exception) -> TierOutcome:
        """Outcome reported when _perform_attempt raised."""
