"""
Tiered unsubscribe state machine.

    INIT -> TIER1_ATTEMPT -> {DONE_SUCCESS | TIER2_ATTEMPT}
    TIER2_ATTEMPT -> {DONE_SUCCESS | DONE_FAILED}

transition() is pure: it maps (state, outcome kind) to the next state and
knows nothing about HTTP or browsers. Tier implementations produce
TierOutcome values; build_result() turns the final step into the auditable
UnsubscribeResult.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple

from ..exceptions import AmbiguousResultError, BlockedError, MailsweepError


class State(Enum):
    INIT = 'init'
    TIER1_ATTEMPT = 'tier1_attempt'
    TIER2_ATTEMPT = 'tier2_attempt'
    DONE_SUCCESS = 'done_success'
    DONE_FAILED = 'done_failed'

    @property
    def is_terminal(self) -> bool:
        return self in (State.DONE_SUCCESS, State.DONE_FAILED)


class Outcome(Enum):
    START = 'start'
    CONFIRMED = 'confirmed'            # success phrase matched
    INCONCLUSIVE = 'inconclusive'      # 2xx without a recognizable confirmation
    HTTP_FAILURE = 'http_failure'      # non-2xx or network error
    UNSUPPORTED = 'unsupported'        # non-HTTP scheme such as mailto
    BLOCKED = 'blocked'                # CAPTCHA, login wall, verification
    NO_ELEMENT = 'no_element'          # nothing to click
    UNCONFIRMED = 'unconfirmed'        # clicked, no confirmation afterwards
    FAULT = 'fault'                    # automation crash or timeout


class InvalidTransition(MailsweepError):
    """An outcome arrived in a state that cannot accept it."""


_TRANSITIONS: Dict[Tuple[State, Outcome], State] = {
    (State.INIT, Outcome.START): State.TIER1_ATTEMPT,
    (State.TIER1_ATTEMPT, Outcome.CONFIRMED): State.DONE_SUCCESS,
    (State.TIER1_ATTEMPT, Outcome.INCONCLUSIVE): State.TIER2_ATTEMPT,
    (State.TIER1_ATTEMPT, Outcome.HTTP_FAILURE): State.TIER2_ATTEMPT,
    (State.TIER1_ATTEMPT, Outcome.UNSUPPORTED): State.DONE_FAILED,
    (State.TIER2_ATTEMPT, Outcome.CONFIRMED): State.DONE_SUCCESS,
    (State.TIER2_ATTEMPT, Outcome.BLOCKED): State.DONE_FAILED,
    (State.TIER2_ATTEMPT, Outcome.NO_ELEMENT): State.DONE_FAILED,
    (State.TIER2_ATTEMPT, Outcome.UNCONFIRMED): State.DONE_FAILED,
    (State.TIER2_ATTEMPT, Outcome.FAULT): State.DONE_FAILED,
}

# Failure reason recorded for each terminal failure
REASON_UNSUPPORTED = 'unsupported scheme'
REASON_BLOCKED = 'blocked'
REASON_NO_ELEMENT = 'no actionable element'
REASON_UNCONFIRMED = 'unconfirmed'

METHOD_HEADER = 'header'
METHOD_TIER2_CLICK = 'tier2-click'
METHOD_MANUAL = 'manual'


def transition(state: State, outcome: 'Outcome') -> State:
    """Next state for an outcome observed in state."""
    try:
        return _TRANSITIONS[(state, outcome)]
    except KeyError:
        raise InvalidTransition(
            f"No transition from {state.value} on {outcome.value}",
            {'state': state.value, 'outcome': outcome.value}
        )


@dataclass(frozen=True)
class TierOutcome:
    """What one tier observed."""

    kind: Outcome
    message: str
    artifacts: Tuple[str, ...] = ()
    detail: Optional[str] = None


@dataclass(frozen=True)
class UnsubscribeResult:
    """Auditable record of a finished unsubscribe run."""

    success: bool
    method: str
    message: str
    artifacts: Tuple[str, ...] = ()
    reason: Optional[str] = None
    final_state: State = State.DONE_FAILED
    history: Tuple[State, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        return 'success' if self.success else 'failed'

    @property
    def requires_manual_action(self) -> bool:
        return not self.success and self.reason in (REASON_BLOCKED, REASON_UNSUPPORTED)

    @property
    def uncertain(self) -> bool:
        return not self.success and self.reason == REASON_UNCONFIRMED

    @property
    def evidence_path(self) -> Optional[str]:
        """Most recent artifact, the one persisted on the attempt record."""
        return self.artifacts[-1] if self.artifacts else None

    def raise_for_failure(self):
        """Raise the matching taxonomy error when the run did not succeed."""
        if self.success:
            return
        context = {'method': self.method, 'reason': self.reason}
        if self.reason == REASON_BLOCKED:
            raise BlockedError(self.message, self.artifacts, context)
        if self.reason == REASON_UNCONFIRMED:
            raise AmbiguousResultError(self.message, self.artifacts, context)
        raise MailsweepError(self.message, context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status': self.status,
            'method': self.method,
            'message': self.message,
            'reason': self.reason,
            'artifacts': list(self.artifacts),
            'history': [s.value for s in self.history],
        }


_FAILURE_REASONS = {
    Outcome.UNSUPPORTED: REASON_UNSUPPORTED,
    Outcome.BLOCKED: REASON_BLOCKED,
    Outcome.NO_ELEMENT: REASON_NO_ELEMENT,
    Outcome.UNCONFIRMED: REASON_UNCONFIRMED,
}


def build_result(history: Tuple[State, ...], last_tier: State, outcome: TierOutcome,
                 artifacts: Tuple[str, ...]) -> UnsubscribeResult:
    """Terminal result for the final outcome of a run."""
    final_state = history[-1]
    if not final_state.is_terminal:
        raise InvalidTransition(f"Run ended in non-terminal state {final_state.value}")

    if outcome.kind == Outcome.UNSUPPORTED:
        method = METHOD_MANUAL
    elif last_tier == State.TIER1_ATTEMPT:
        method = METHOD_HEADER
    else:
        method = METHOD_TIER2_CLICK

    if final_state == State.DONE_SUCCESS:
        return UnsubscribeResult(
            success=True, method=method, message=outcome.message,
            artifacts=artifacts, final_state=final_state, history=history,
        )

    reason = _FAILURE_REASONS.get(outcome.kind) or outcome.detail or outcome.message
    return UnsubscribeResult(
        success=False,
        method=method,
        message=f"Automated unsubscribe failed. {outcome.message}. Manual unsubscribe recommended.",
        artifacts=artifacts,
        reason=reason,
        final_state=final_state,
        history=history,
    )
