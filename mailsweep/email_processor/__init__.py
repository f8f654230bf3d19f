"""
Message ingestion: normalization, unsubscribe detection, AI classification and sync.
"""

from .types import NormalizedMessage, LinkCandidate, ScoredLink, DetectionResult, ClassificationResult
from .normalizer import MessageNormalizer, extract_body, truncate_body, get_header
from .unsubscribe_detector import UnsubscribeDetector, score_candidate, rank_candidates, extract_link_candidates
from .classifier import ClassificationOrchestrator
from .sync_coordinator import SyncCoordinator, SyncOutcome, build_sync_query

__all__ = [
    'NormalizedMessage', 'LinkCandidate', 'ScoredLink', 'DetectionResult', 'ClassificationResult',
    'MessageNormalizer', 'extract_body', 'truncate_body', 'get_header',
    'UnsubscribeDetector', 'score_candidate', 'rank_candidates', 'extract_link_candidates',
    'ClassificationOrchestrator', 'SyncCoordinator', 'SyncOutcome', 'build_sync_query',
]
