"""
Constants and shared patterns for normalization, detection and unsubscribe.
"""

import re
from typing import List, Pattern

# Stored body cap (bytes)
MAX_BODY_SIZE = 50 * 1024

# Multipart trees deeper than this are not searched
MAX_PART_DEPTH = 32

# Header carrying RFC 2369 / RFC 8058 unsubscribe URIs
LIST_UNSUBSCRIBE_HEADER = 'List-Unsubscribe'

HEADER_URL_PATTERN: Pattern = re.compile(r'<([^>]+)>')

# Link/button text that signals an unsubscribe action, in priority order
UNSUBSCRIBE_PATTERNS: List[Pattern] = [
    re.compile(r'unsubscribe', re.IGNORECASE),
    re.compile(r'opt.?out', re.IGNORECASE),
    re.compile(r'remove.?me', re.IGNORECASE),
    re.compile(r'remove.*email', re.IGNORECASE),
    re.compile(r'stop.?receiving', re.IGNORECASE),
    re.compile(r'stop.*emails', re.IGNORECASE),
    re.compile(r'cancel.*subscription', re.IGNORECASE),
    re.compile(r'email.?preferences', re.IGNORECASE),
    re.compile(r'manage.?subscriptions?', re.IGNORECASE),
    re.compile(r'do.*not.*send', re.IGNORECASE),
]

# Confirmation phrases shown after a successful unsubscribe
SUCCESS_PATTERNS: List[Pattern] = [
    re.compile(r'unsubscribed', re.IGNORECASE),
    re.compile(r'successfully\s+removed', re.IGNORECASE),
    re.compile(r'you\s+have\s+been\s+removed', re.IGNORECASE),
    re.compile(r'you\s+will\s+no\s+longer\s+receive', re.IGNORECASE),
    re.compile(r'preferences\s+(?:have\s+been\s+)?(?:updated|saved)', re.IGNORECASE),
    re.compile(r'subscription\s+(?:cancelled|canceled)', re.IGNORECASE),
    re.compile(r'opt.out\s+confirmed', re.IGNORECASE),
    re.compile(r'removed\s+from.*list', re.IGNORECASE),
]

# Page content that means automation cannot proceed
BLOCKER_PATTERNS: List[Pattern] = [
    re.compile(r'captcha', re.IGNORECASE),
    re.compile(r'recaptcha', re.IGNORECASE),
    re.compile(r'verification', re.IGNORECASE),
    re.compile(r'sign\s+in', re.IGNORECASE),
    re.compile(r'log\s+in', re.IGNORECASE),
    re.compile(r'authentication\s+required', re.IGNORECASE),
    re.compile(r'access\s+denied', re.IGNORECASE),
]

FOOTER_HINT_PATTERN: Pattern = re.compile(r'footer', re.IGNORECASE)

# Link scoring weights
SCORE_HREF = 3
SCORE_TEXT = 5
SCORE_ATTRIBUTE = 2
SCORE_FOOTER = 1

# Detection methods
METHOD_HEADER = 'header'
METHOD_LINK = 'link'
METHOD_NONE = 'none'

# Realistic client identity for outbound unsubscribe requests
USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


def matches_any(patterns: List[Pattern], text: str) -> bool:
    """True if any pattern matches somewhere in text."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in patterns)
