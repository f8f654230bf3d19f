"""
Drive the tiered state machine for one unsubscribe target.
"""

from typing import Dict, List, Optional

from ..email_processor.logging import StructuredLogger
from ..provider.request_queue import RequestQueue
from .artifacts import ArtifactStore
from .base_executor import UnsubscribeTier
from .browser_executor import BrowserClickTier
from .http_executor import HttpGetTier
from .state_machine import (
    Outcome, State, TierOutcome, UnsubscribeResult, build_result, transition
)


class UnsubscribeExecutor:
    """Run Tier 1 and, when needed, Tier 2 until a terminal state is reached."""

    def __init__(self, tier1: Optional[UnsubscribeTier] = None,
                 tier2: Optional[UnsubscribeTier] = None,
                 queue: Optional[RequestQueue] = None,
                 artifacts: Optional[ArtifactStore] = None):
        self.tiers: Dict[State, UnsubscribeTier] = {
            State.TIER1_ATTEMPT: tier1 or HttpGetTier(queue=queue),
            State.TIER2_ATTEMPT: tier2 or BrowserClickTier(artifacts=artifacts),
        }
        self.logger = StructuredLogger("unsubscribe_executor")

    def execute(self, target: str, attempt_id: str) -> UnsubscribeResult:
        """
        Attempt to unsubscribe from target.

        The machine never retries internally; a failed result is final for
        this invocation.
        """
        state = State.INIT
        history: List[State] = [state]
        state = transition(state, Outcome.START)
        history.append(state)

        artifacts: List[str] = []
        outcome: Optional[TierOutcome] = None
        last_tier = state

        with self.logger.time_operation('unsubscribe'):
            while not state.is_terminal:
                last_tier = state
                outcome = self.tiers[state].attempt(target, attempt_id)
                artifacts.extend(outcome.artifacts)
                state = transition(state, outcome.kind)
                history.append(state)

        result = build_result(tuple(history), last_tier, outcome, tuple(artifacts))
        self.logger.info(
            f"Unsubscribe finished: {result.status}",
            {'attempt_id': attempt_id, 'method': result.method, 'reason': result.reason}
        )
        return result
