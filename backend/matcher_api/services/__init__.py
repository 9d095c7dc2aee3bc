"""Service layer: the matching pipeline and its background jobs."""

from .batch import BatchMatcher, RunLock, RunLockBusyError
from .matcher import (
    FileMatcher,
    MatchConflictError,
    MatchError,
    MatchFileNotFoundError,
    MatchInputError,
    MatchPersistenceError,
    MatchStage,
    MatchUpstreamError,
)
from .query import build_search_queries, normalize_query
from .ranking import HttpReranker, NoopReranker, Reranker, RerankError, score_candidates

__all__ = [
    "BatchMatcher",
    "FileMatcher",
    "HttpReranker",
    "MatchConflictError",
    "MatchError",
    "MatchFileNotFoundError",
    "MatchInputError",
    "MatchPersistenceError",
    "MatchStage",
    "MatchUpstreamError",
    "NoopReranker",
    "RerankError",
    "Reranker",
    "RunLock",
    "RunLockBusyError",
    "build_search_queries",
    "normalize_query",
    "score_candidates",
]
