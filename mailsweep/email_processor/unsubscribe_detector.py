"""
Unsubscribe target detection from headers and body content.

Decision order, first match wins:
1. List-Unsubscribe header (HTTP(S) preferred over mailto)
2. Highest-scoring absolute HTTP(S) anchor in the HTML body
3. Nothing found
"""

from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .constants import (
    HEADER_URL_PATTERN, UNSUBSCRIBE_PATTERNS, FOOTER_HINT_PATTERN,
    SCORE_HREF, SCORE_TEXT, SCORE_ATTRIBUTE, SCORE_FOOTER,
    METHOD_HEADER, METHOD_LINK, LIST_UNSUBSCRIBE_HEADER, matches_any
)
from .logging import StructuredLogger
from .types import DetectionResult, LinkCandidate, ScoredLink


def is_http_url(url: str) -> bool:
    return bool(url) and url.strip().lower().startswith(('http://', 'https://'))


def parse_header_target(header_value: str) -> Optional[str]:
    """Pick the unsubscribe URI from a List-Unsubscribe value; HTTP(S) beats mailto."""
    if not header_value:
        return None
    uris = [match.strip() for match in HEADER_URL_PATTERN.findall(header_value) if match.strip()]
    http_uri = next((uri for uri in uris if is_http_url(uri)), None)
    if http_uri:
        return http_uri
    return next((uri for uri in uris if uri.lower().startswith('mailto:')), None)


def score_candidate(candidate: LinkCandidate) -> int:
    """Heuristic score for one link; 0 means it does not look like an unsubscribe link."""
    if not is_http_url(candidate.href):
        return 0

    signal = 0
    if matches_any(UNSUBSCRIBE_PATTERNS, candidate.href):
        signal += SCORE_HREF
    if matches_any(UNSUBSCRIBE_PATTERNS, candidate.text):
        signal += SCORE_TEXT
    if any(matches_any(UNSUBSCRIBE_PATTERNS, attr) for attr in candidate.attributes):
        signal += SCORE_ATTRIBUTE
    if not signal:
        # Footer placement alone does not qualify a link
        return 0
    return signal + (SCORE_FOOTER if candidate.in_footer else 0)


def rank_candidates(candidates: List[LinkCandidate]) -> List[ScoredLink]:
    """Qualifying candidates, best first; ties keep document order."""
    scored = [ScoredLink(c, score_candidate(c)) for c in candidates]
    qualifying = [s for s in scored if s.score > 0]
    return sorted(qualifying, key=lambda s: (-s.score, s.candidate.position))


def _in_footer(element) -> bool:
    for parent in element.parents:
        if parent.name == 'footer':
            return True
        hints = ' '.join(parent.get('class') or []) + ' ' + (parent.get('id') or '')
        if FOOTER_HINT_PATTERN.search(hints):
            return True
    return False


def extract_link_candidates(html: str) -> List[LinkCandidate]:
    """Reduce every <a href> in an HTML body to a LinkCandidate."""
    if not html:
        return []
    soup = BeautifulSoup(html, 'html.parser')
    candidates = []
    for position, a_tag in enumerate(soup.find_all('a', href=True)):
        attributes = (
            ' '.join(a_tag.get('class') or []),
            a_tag.get('style') or '',
            a_tag.get('id') or '',
        )
        candidates.append(LinkCandidate(
            href=a_tag['href'].strip(),
            text=a_tag.get_text(' ', strip=True),
            attributes=tuple(attr for attr in attributes if attr),
            in_footer=_in_footer(a_tag),
            position=position,
        ))
    return candidates


class UnsubscribeDetector:
    """Extract a candidate unsubscribe target from headers or body."""

    def __init__(self):
        self.logger = StructuredLogger("unsubscribe_detector")

    def detect(self, body: str, headers: Optional[Dict[str, str]] = None) -> DetectionResult:
        header_result = self.detect_from_headers(headers or {})
        if header_result.found:
            return header_result
        return self.detect_from_body(body)

    def detect_from_headers(self, headers: Dict[str, str]) -> DetectionResult:
        header_value = next(
            (value for name, value in headers.items() if name.lower() == LIST_UNSUBSCRIBE_HEADER.lower()),
            ''
        )
        target = parse_header_target(header_value)
        if target:
            self.logger.debug("Header unsubscribe target found", {'target': target})
            return DetectionResult(target=target, method=METHOD_HEADER)
        if header_value:
            self.logger.debug("Unparseable List-Unsubscribe header", {'header': header_value[:200]})
        return DetectionResult()

    def detect_from_body(self, body: str) -> DetectionResult:
        try:
            ranked = rank_candidates(extract_link_candidates(body))
        except Exception as e:
            self.logger.log_exception(e, {'stage': 'body_parse'})
            return DetectionResult()

        self.logger.log_operation_count('body_detection', bool(ranked))
        if not ranked:
            return DetectionResult()
        best = ranked[0]
        return DetectionResult(target=best.candidate.href, method=METHOD_LINK, score=best.score)
