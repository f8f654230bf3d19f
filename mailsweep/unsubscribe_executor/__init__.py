"""
Tiered unsubscribe execution.

Tier 1 is a plain HTTP GET; Tier 2 drives a headless browser. The transition
logic lives in state_machine and has no I/O.
"""

from .state_machine import (
    State, Outcome, TierOutcome, UnsubscribeResult, InvalidTransition, transition, build_result
)
from .base_executor import UnsubscribeTier
from .http_executor import HttpGetTier
from .browser_executor import BrowserSession, PlaywrightBrowserSession, BrowserClickTier, PageElement
from .artifacts import ArtifactStore
from .agent import UnsubscribeExecutor
from .service import (
    UnsubscribeService, BulkUnsubscribeReport, MessageUnsubscribeOutcome, NoUnsubscribeTargetError
)

__all__ = [
    'State', 'Outcome', 'TierOutcome', 'UnsubscribeResult', 'InvalidTransition',
    'transition', 'build_result', 'UnsubscribeTier', 'HttpGetTier',
    'BrowserSession', 'PlaywrightBrowserSession', 'BrowserClickTier', 'PageElement',
    'ArtifactStore', 'UnsubscribeExecutor', 'UnsubscribeService',
    'BulkUnsubscribeReport', 'MessageUnsubscribeOutcome', 'NoUnsubscribeTargetError',
]
