"""Services package."""

from bankrec.services.auto_matching import AutoMatchOptions, ReconciliationProgress, ReconciliationWorkflow
from bankrec.services.combination import MultiTransactionMatch, find_combination_match
from bankrec.services.errors import (
    BankTransactionNotFoundError,
    LedgerTransactionNotFoundError,
    MatchConflictError,
    MatchNotFoundError,
    NotFoundError,
    ReconciliationError,
    StatementNotFoundError,
)
from bankrec.services.ledger_store import ReconciliationStore
from bankrec.services.match_executor import MatchExecutionResult, apply_suggestions, unmatch
from bankrec.services.reconciliation import (
    BatchMatchResult,
    MatchStatistics,
    MatchSuggestion,
    batch_auto_match,
    build_score_table,
    find_best_matches,
    get_match_statistics,
    select_pair_matches,
)
from bankrec.services.scoring import (
    DEFAULT_MATCHING_CONFIG,
    BankView,
    CandidateView,
    ConfidenceLevel,
    MatchingConfig,
    ScoreResult,
    SuggestionType,
    calculate_match_score,
    classify_confidence,
    load_matching_config,
    project_bank_transaction,
    project_candidate,
)

__all__ = [
    "DEFAULT_MATCHING_CONFIG",
    "AutoMatchOptions",
    "BankTransactionNotFoundError",
    "BankView",
    "BatchMatchResult",
    "CandidateView",
    "ConfidenceLevel",
    "LedgerTransactionNotFoundError",
    "MatchConflictError",
    "MatchExecutionResult",
    "MatchNotFoundError",
    "MatchStatistics",
    "MatchSuggestion",
    "MatchingConfig",
    "MultiTransactionMatch",
    "NotFoundError",
    "ReconciliationError",
    "ReconciliationProgress",
    "ReconciliationStore",
    "ReconciliationWorkflow",
    "ScoreResult",
    "StatementNotFoundError",
    "SuggestionType",
    "apply_suggestions",
    "batch_auto_match",
    "build_score_table",
    "calculate_match_score",
    "classify_confidence",
    "find_best_matches",
    "find_combination_match",
    "get_match_statistics",
    "load_matching_config",
    "project_bank_transaction",
    "project_candidate",
    "select_pair_matches",
    "unmatch",
]
