"""Pydantic schemas package."""

from bankrec.schemas.base import BaseResponse, ListResponse
from bankrec.schemas.reconciliation import (
    AutoMatchRequest,
    AutoMatchResponse,
    ManualMatchRequest,
    MatchStatisticsResponse,
    MatchSuggestionListResponse,
    MatchSuggestionResponse,
    MultiTransactionMatchListResponse,
    MultiTransactionMatchResponse,
    ReconciliationMatchResponse,
    ReconciliationProgressResponse,
)

__all__ = [
    "AutoMatchRequest",
    "AutoMatchResponse",
    "BaseResponse",
    "ListResponse",
    "ManualMatchRequest",
    "MatchStatisticsResponse",
    "MatchSuggestionListResponse",
    "MatchSuggestionResponse",
    "MultiTransactionMatchListResponse",
    "MultiTransactionMatchResponse",
    "ReconciliationMatchResponse",
    "ReconciliationProgressResponse",
]
