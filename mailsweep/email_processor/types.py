"""
Immutable records passed between the normalizer, detector, classifier and sync.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional, Tuple

from .constants import METHOD_NONE


@dataclass(frozen=True)
class NormalizedMessage:
    """Provider message decoded into the canonical shape."""

    external_id: str
    subject: str
    sender: str
    body: str
    body_truncated: bool
    received_at: datetime
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def list_unsubscribe(self) -> str:
        return self.headers.get('List-Unsubscribe', '')


@dataclass(frozen=True)
class LinkCandidate:
    """An anchor element reduced to what the scoring function needs."""

    href: str
    text: str = ''
    attributes: Tuple[str, ...] = ()
    in_footer: bool = False
    position: int = 0


@dataclass(frozen=True)
class ScoredLink:
    candidate: LinkCandidate
    score: int


@dataclass(frozen=True)
class DetectionResult:
    """Unsubscribe target and how it was found. target is None iff method is 'none'."""

    target: Optional[str] = None
    method: str = METHOD_NONE
    score: int = 0

    def __post_init__(self):
        if (self.target is None) != (self.method == METHOD_NONE):
            raise ValueError("target must be None exactly when method is 'none'")

    @property
    def found(self) -> bool:
        return self.target is not None

    @property
    def is_http(self) -> bool:
        return bool(self.target) and self.target.lower().startswith(('http://', 'https://'))

    def to_dict(self) -> Dict[str, Any]:
        return {'target': self.target, 'method': self.method}


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of a classification call after the confidence gate."""

    category_id: Optional[int]
    confidence: float
    reasoning: str = ''
    proposed_category_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'categoryId': self.category_id,
            'confidence': self.confidence,
            'reasoning': self.reasoning,
        }
