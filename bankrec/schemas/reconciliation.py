"""Pydantic schemas for reconciliation API."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from bankrec.schemas.base import BaseResponse, ListResponse


class ConfidenceLevelEnum(str, Enum):
    """Confidence tier of a suggestion."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchTypeEnum(str, Enum):
    """How a match was created."""

    MANUAL = "manual"
    SUGGESTED = "suggested"


class SuggestionTypeEnum(str, Enum):
    """Kind of proposal: exact or fuzzy pair, or multi-transaction."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    MULTI = "multi"


class MatchSuggestionResponse(BaseResponse):
    """Suggested one-to-one match."""

    bank_transaction_id: str
    candidate_id: str
    score: float
    confidence: ConfidenceLevelEnum
    reasons: list[str]
    amount_match: bool
    date_match: bool
    reference_match: bool
    description_match: bool
    cheque_match: bool
    amount_variance: Decimal | None = None
    date_variance_days: int | None = None
    explanation: str
    match_type: SuggestionTypeEnum = SuggestionTypeEnum.FUZZY


MatchSuggestionListResponse = ListResponse[MatchSuggestionResponse]


class MultiTransactionMatchResponse(BaseResponse):
    """Suggested match of one bank line against several ledger transactions."""

    bank_transaction_id: str
    candidate_ids: list[str]
    score: float
    confidence: ConfidenceLevelEnum
    total_amount: Decimal
    amount_variance: Decimal
    reasons: list[str]
    explanation: str
    match_type: SuggestionTypeEnum = SuggestionTypeEnum.MULTI


MultiTransactionMatchListResponse = ListResponse[MultiTransactionMatchResponse]


class MatchStatisticsResponse(BaseResponse):
    """Aggregate statistics for a statement's matching run."""

    total_bank_transactions: int
    total_candidates: int
    high_confidence_matches: int
    medium_confidence_matches: int
    low_confidence_matches: int
    multi_transaction_matches: int
    matchable_transactions: int
    unmatchable_transactions: int
    estimated_match_rate: float


class ReconciliationProgressResponse(BaseResponse):
    """Reconciled share of a statement."""

    total: int
    reconciled: int
    unreconciled: int
    percentage_complete: float


class AutoMatchRequest(BaseModel):
    """Buckets to apply automatically."""

    match_high_confidence: bool = True
    match_medium_confidence: bool = False
    match_low_confidence: bool = False
    match_multi_transactions: bool = False


class AutoMatchResponse(BaseResponse):
    """Result of an auto-match run."""

    matched: int
    skipped: int
    errors: list[str] = Field(default_factory=list)


class ManualMatchRequest(BaseModel):
    """Request body to match a bank transaction by hand."""

    bank_transaction_id: UUID
    candidate_ids: list[UUID] = Field(min_length=1, max_length=50)
    notes: str | None = Field(default=None, max_length=1000)


class ReconciliationMatchResponse(BaseResponse):
    """Persisted match."""

    id: UUID
    statement_id: UUID
    bank_txn_id: UUID
    candidate_ids: list[str]
    match_type: MatchTypeEnum
    match_score: float | None
    matched_by: str
    notes: str | None
    matched_at: datetime
