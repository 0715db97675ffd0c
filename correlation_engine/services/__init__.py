"""Connection discovery and pattern detection services."""

from correlation_engine.services.candidate_generator import (
    CandidateGenerator,
    CandidateLists,
    deduplicate_candidates,
)
from correlation_engine.services.connection_lookup import ConnectionLookupService
from correlation_engine.services.connection_scorer import ConnectionScorer
from correlation_engine.services.connection_service import ConnectionService, select_connections
from correlation_engine.services.pattern_detection import PatternDetectionService

__all__ = [
    "CandidateGenerator",
    "CandidateLists",
    "ConnectionLookupService",
    "ConnectionScorer",
    "ConnectionService",
    "PatternDetectionService",
    "deduplicate_candidates",
    "select_connections",
]
