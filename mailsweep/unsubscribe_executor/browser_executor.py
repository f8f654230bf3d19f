"""
Tier 2: drive a headless browser to the unsubscribe page and click through.

Flow: navigate, screenshot "before", give up on blocker pages (CAPTCHA,
login), find a button then a link matching the unsubscribe patterns, click,
let the page settle, screenshot "after", then look for a confirmation phrase.
Any automation fault is reported with an "error" screenshot when one can
still be taken. The browser is always closed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from playwright.sync_api import sync_playwright

from ..config import Config
from ..email_processor.constants import (
    BLOCKER_PATTERNS, SUCCESS_PATTERNS, UNSUBSCRIBE_PATTERNS, USER_AGENT, matches_any
)
from .artifacts import ArtifactStore
from .base_executor import UnsubscribeTier
from .state_machine import Outcome, TierOutcome

BROWSER_ARGS = [
    '--disable-blink-features=AutomationControlled',
    '--no-sandbox',
    '--disable-setuid-sandbox',
]
VIEWPORT = {'width': 1920, 'height': 1080}

# Element kinds searched, in order
ELEMENT_KINDS = ('button', 'link')


class NavigationError(Exception):
    """The unsubscribe page could not be loaded."""


@dataclass
class PageElement:
    """A clickable element on the page and its visible text."""

    kind: str
    text: str
    handle: Any = None


class BrowserSession(ABC):
    """The browser operations Tier 2 needs."""

    @abstractmethod
    def launch(self):
        pass

    @abstractmethod
    def navigate(self, url: str) -> Optional[int]:
        """Load url and wait for the network to go idle; returns the HTTP status."""

    @abstractmethod
    def content(self) -> str:
        pass

    @abstractmethod
    def screenshot(self, path: str):
        pass

    @abstractmethod
    def elements(self, kind: str) -> List[PageElement]:
        """Visible buttons ('button') or anchors ('link') in document order."""

    @abstractmethod
    def click(self, element: PageElement):
        pass

    @abstractmethod
    def wait(self, seconds: float):
        pass

    @abstractmethod
    def close(self):
        """Release every browser resource; safe after a partial launch."""


class PlaywrightBrowserSession(BrowserSession):
    """Headless Chromium through the Playwright sync API."""

    _SELECTORS = {
        'button': 'button, input[type="submit"], input[type="button"], [role="button"]',
        'link': 'a',
    }

    def __init__(
        self,
        headless: bool = True,
        navigation_timeout: Optional[int] = None,
        action_timeout: Optional[int] = None,
        user_agent: str = USER_AGENT
    ):
        self.headless = headless
        self.navigation_timeout = navigation_timeout or Config.BROWSER_NAVIGATION_TIMEOUT
        self.action_timeout = action_timeout or Config.BROWSER_ACTION_TIMEOUT
        self.user_agent = user_agent
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def launch(self):
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self.headless,
            args=BROWSER_ARGS,
            timeout=self.navigation_timeout * 1000
        )
        self._context = self._browser.new_context(viewport=VIEWPORT, user_agent=self.user_agent)
        self._page = self._context.new_page()
        self._page.set_default_navigation_timeout(self.navigation_timeout * 1000)
        self._page.set_default_timeout(self.action_timeout * 1000)

    def navigate(self, url: str) -> Optional[int]:
        response = self._page.goto(url, wait_until='networkidle')
        return response.status if response else None

    def content(self) -> str:
        return self._page.content()

    def screenshot(self, path: str):
        self._page.screenshot(path=path, full_page=True)

    def elements(self, kind: str) -> List[PageElement]:
        found = []
        for locator in self._page.locator(self._SELECTORS[kind]).all():
            if not locator.is_visible():
                continue
            text = (locator.text_content() or '').strip()
            if not text:
                text = locator.get_attribute('value') or ''
            found.append(PageElement(kind=kind, text=text, handle=locator))
        return found

    def click(self, element: PageElement):
        element.handle.click()

    def wait(self, seconds: float):
        self._page.wait_for_timeout(seconds * 1000)

    def close(self):
        try:
            if self._context is not None:
                self._context.close()
            if self._browser is not None:
                self._browser.close()
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._page = self._context = self._browser = self._playwright = None


def find_actionable(session: BrowserSession) -> Optional[PageElement]:
    """
    First element matching the unsubscribe patterns.

    Patterns are tried in priority order; within a pattern buttons come before
    links and elements keep document order.
    """
    by_kind = [(kind, session.elements(kind)) for kind in ELEMENT_KINDS]
    for pattern in UNSUBSCRIBE_PATTERNS:
        for _, candidates in by_kind:
            for element in candidates:
                if element.text and pattern.search(element.text):
                    return element
    return None


class BrowserClickTier(UnsubscribeTier):
    """Unsubscribe by clicking through the target page in a browser."""

    def __init__(
        self,
        artifacts: Optional[ArtifactStore] = None,
        session_factory: Callable[[], BrowserSession] = PlaywrightBrowserSession,
        settle_seconds: Optional[float] = None
    ):
        super().__init__()
        self.artifacts = artifacts or ArtifactStore()
        self.session_factory = session_factory
        self.settle_seconds = Config.BROWSER_SETTLE_SECONDS if settle_seconds is None else settle_seconds

    @property
    def tier_name(self) -> str:
        return 'tier2'

    def _capture(self, session: BrowserSession, attempt_id: str, label: str) -> str:
        path, relative = self.artifacts.allocate(attempt_id, label)
        session.screenshot(str(path))
        return relative

    def _perform_attempt(self, target: str, attempt_id: str) -> TierOutcome:
        artifacts: List[str] = []
        session = self.session_factory()
        try:
            return self._drive(session, target, attempt_id, artifacts)
        except Exception as e:
            self.logger.log_exception(e, {'stage': 'browser'})
            try:
                artifacts.append(self._capture(session, attempt_id, 'error'))
            except Exception as capture_error:
                self.logger.warning(f"Error screenshot failed: {capture_error}")
            return TierOutcome(
                Outcome.FAULT,
                f"Browser automation failed: {e}",
                tuple(artifacts),
                detail=str(e),
            )
        finally:
            session.close()

    def _drive(self, session: BrowserSession, target: str, attempt_id: str,
               artifacts: List[str]) -> TierOutcome:
        session.launch()
        status = session.navigate(target)
        if status is None or not 200 <= status < 300:
            raise NavigationError(f"Failed to load page: HTTP {status}")

        artifacts.append(self._capture(session, attempt_id, 'before'))

        if matches_any(BLOCKER_PATTERNS, session.content()):
            return TierOutcome(Outcome.BLOCKED, 'Page requires CAPTCHA or login', tuple(artifacts))

        element = find_actionable(session)
        if element is None:
            return TierOutcome(
                Outcome.NO_ELEMENT, 'Could not find unsubscribe button or link', tuple(artifacts)
            )

        self.logger.debug(f"Clicking {element.kind}", {'text': element.text[:100]})
        session.click(element)
        session.wait(self.settle_seconds)
        artifacts.append(self._capture(session, attempt_id, 'after'))

        if matches_any(SUCCESS_PATTERNS, session.content()):
            return TierOutcome(
                Outcome.CONFIRMED, f"Successfully unsubscribed by clicking {element.kind}", tuple(artifacts)
            )
        return TierOutcome(
            Outcome.UNCONFIRMED,
            f"Clicked {element.kind} but could not confirm success",
            tuple(artifacts),
        )

    def _fault_outcome(self, error: Exception) -> TierOutcome:
        return TierOutcome(Outcome.FAULT, f"Browser automation failed: {error}", detail=str(error))
