"""
Decode provider-native Gmail messages into NormalizedMessage records.
"""

import base64
import binascii
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Any, List, Optional, Tuple

from ..database.models import utcnow
from .constants import MAX_BODY_SIZE, MAX_PART_DEPTH
from .types import NormalizedMessage

logger = logging.getLogger(__name__)

KEPT_HEADERS = ('Subject', 'From', 'Date', 'List-Unsubscribe', 'List-Unsubscribe-Post')


def get_header(headers: List[Dict[str, str]], name: str) -> str:
    """Case-insensitive lookup returning the first matching header value."""
    wanted = name.lower()
    for header in headers or []:
        if (header.get('name') or '').lower() == wanted:
            return header.get('value') or ''
    return ''


def decode_body_data(data: str) -> str:
    """Decode a base64 (URL-safe or standard) part payload; bad input yields ''."""
    if not data:
        return ''
    try:
        raw = base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))
    except (binascii.Error, ValueError):
        return ''
    return raw.decode('utf-8', errors='replace')


def _ordered_children(parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Children in search order: first HTML part, first plain part, then the rest."""
    html = next((p for p in parts if p.get('mimeType') == 'text/html'), None)
    text = next((p for p in parts if p.get('mimeType') == 'text/plain'), None)
    preferred = [p for p in (html, text) if p is not None]
    return preferred + [p for p in parts if p is not html and p is not text]


def extract_body(payload: Optional[Dict[str, Any]], max_depth: int = MAX_PART_DEPTH) -> str:
    """
    Depth-first search of a multipart tree for the body text.

    At each level an HTML child is tried before a plain-text child, then the
    remaining children in order; the first non-empty decoded payload wins.
    Uses an explicit stack and never mutates the payload.
    """
    if not isinstance(payload, dict):
        return ''

    stack: List[Tuple[Dict[str, Any], int]] = [(payload, 0)]
    while stack:
        part, depth = stack.pop()
        body = part.get('body') or {}
        content = decode_body_data(body.get('data') or '')
        if content:
            return content

        parts = part.get('parts') or []
        if not parts:
            continue
        if depth >= max_depth:
            logger.debug(f"Multipart depth cap {max_depth} reached")
            continue
        children = [p for p in _ordered_children(parts) if isinstance(p, dict)]
        # Reverse so the preferred child is popped first
        for child in reversed(children):
            stack.append((child, depth + 1))

    return ''


def truncate_body(body: str, max_bytes: int = MAX_BODY_SIZE) -> Tuple[str, bool]:
    """Cap the UTF-8 size of body; returns (body, truncated)."""
    encoded = body.encode('utf-8')
    if len(encoded) <= max_bytes:
        return body, False
    return encoded[:max_bytes].decode('utf-8', errors='ignore'), True


def parse_received_at(date_header: str, internal_date: Optional[str] = None) -> datetime:
    """Date header, then provider internal date (epoch ms), then now; naive UTC."""
    if date_header:
        try:
            parsed = parsedate_to_datetime(date_header)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except (TypeError, ValueError, IndexError, OverflowError, OSError):
            pass
    if internal_date:
        try:
            return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (TypeError, ValueError, OverflowError, OSError):
            pass
    return utcnow()


class MessageNormalizer:
    """Turn a Gmail API message (format=full) into a NormalizedMessage."""

    def __init__(self, max_body_size: int = MAX_BODY_SIZE):
        self.max_body_size = max_body_size

    def normalize(self, raw_message: Dict[str, Any]) -> NormalizedMessage:
        payload = raw_message.get('payload') or {}
        headers = payload.get('headers') or []

        kept = {}
        for name in KEPT_HEADERS:
            value = get_header(headers, name)
            if value:
                kept[name] = value

        body, truncated = truncate_body(extract_body(payload), self.max_body_size)

        return NormalizedMessage(
            external_id=raw_message['id'],
            subject=kept.get('Subject', ''),
            sender=kept.get('From', ''),
            body=body,
            body_truncated=truncated,
            received_at=parse_received_at(kept.get('Date', ''), raw_message.get('internalDate')),
            headers=kept,
        )
