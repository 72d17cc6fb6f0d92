"""Reconciliation matching engine.

Pair matching, combination fallback and bucketing for one statement
snapshot. Nothing here touches the database: callers fetch the unmatched
records, run :func:`batch_auto_match`, and hand accepted suggestions to the
match executor.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from bankrec.logger import get_logger, log_timing
from bankrec.services.combination import MultiTransactionMatch, find_combination_match
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
    project_bank_transaction,
    project_candidate,
)

logger = get_logger(__name__)

ScoreTable = tuple[tuple[ScoreResult, ...], ...]


@dataclass
class MatchSuggestion:
    """Proposed one-to-one match between a bank line and a ledger transaction."""

    bank_transaction_id: str
    candidate_id: str
    score: float
    confidence: ConfidenceLevel
    reasons: list[str] = field(default_factory=list)
    amount_match: bool = False
    date_match: bool = False
    reference_match: bool = False
    description_match: bool = False
    cheque_match: bool = False
    amount_variance: Decimal | None = None
    date_variance_days: int | None = None
    explanation: str = ""
    match_type: SuggestionType = SuggestionType.FUZZY


@dataclass
class BatchMatchResult:
    """Bucketed output of one matching run."""

    high_confidence: list[MatchSuggestion] = field(default_factory=list)
    medium_confidence: list[MatchSuggestion] = field(default_factory=list)
    low_confidence: list[MatchSuggestion] = field(default_factory=list)
    multi_matches: list[MultiTransactionMatch] = field(default_factory=list)
    unmatched: list[BankView] = field(default_factory=list)
    total_bank_transactions: int = 0
    total_candidates: int = 0


@dataclass(frozen=True)
class MatchStatistics:
    """Aggregate counts for a matching run."""

    total_bank_transactions: int
    total_candidates: int
    high_confidence_matches: int
    medium_confidence_matches: int
    low_confidence_matches: int
    multi_transaction_matches: int
    matchable_transactions: int
    unmatchable_transactions: int
    # Fraction in [0, 1]; 0.0 when there is nothing to match
    estimated_match_rate: float


def build_suggestion(
    bank: BankView,
    candidate: CandidateView,
    result: ScoreResult,
    confidence: ConfidenceLevel,
    config: MatchingConfig,
) -> MatchSuggestion:
    """Turn a scored pair into a suggestion with per-dimension flags."""
    breakdown = result.breakdown
    exact = config.exact_amount_weight > 0 and breakdown.get("amount", 0.0) >= config.exact_amount_weight
    return MatchSuggestion(
        bank_transaction_id=bank.id,
        candidate_id=candidate.id,
        score=result.score,
        confidence=confidence,
        reasons=list(result.reasons),
        amount_match=breakdown.get("amount", 0.0) >= config.exact_amount_weight * 0.8,
        date_match=breakdown.get("date", 0.0) >= config.date_weight * 0.8,
        reference_match=breakdown.get("reference", 0.0) > 0,
        description_match=breakdown.get("description", 0.0) >= config.description_weight * 0.5,
        cheque_match=breakdown.get("cheque", 0.0) > 0,
        amount_variance=result.amount_variance,
        date_variance_days=result.date_variance_days,
        explanation="; ".join(result.reasons) if result.reasons else "No matching signals",
        match_type=SuggestionType.EXACT if exact else SuggestionType.FUZZY,
    )


def build_score_table(
    banks: Sequence[BankView],
    candidates: Sequence[CandidateView],
    config: MatchingConfig,
) -> ScoreTable:
    """Score every bank line against every candidate, rows in bank order."""
    return tuple(
        tuple(calculate_match_score(bank, candidate, config) for candidate in candidates) for bank in banks
    )


def select_pair_matches(
    banks: Sequence[BankView],
    candidates: Sequence[CandidateView],
    table: ScoreTable,
    config: MatchingConfig,
) -> tuple[list[MatchSuggestion | None], set[int]]:
    """Greedily assign each bank line its best still-available candidate.

    Bank lines are processed in input order and a claimed candidate leaves
    the pool for every later line. Ties between candidates go to the earlier
    one. A pair qualifies only when it clears ``minimum_match_score`` and the
    classifier assigns it a tier.

    Returns one slot per bank line (None when unresolved) and the indices of
    claimed candidates.
    """
    claimed: set[int] = set()
    selections: list[MatchSuggestion | None] = []

    for bank_index, bank in enumerate(banks):
        best_index: int | None = None
        best_result: ScoreResult | None = None
        best_confidence: ConfidenceLevel | None = None

        for candidate_index, result in enumerate(table[bank_index]):
            if candidate_index in claimed or result.score < config.minimum_match_score:
                continue
            confidence = classify_confidence(result.score, config)
            if confidence is None:
                continue
            if best_result is None or result.score > best_result.score:
                best_index = candidate_index
                best_result = result
                best_confidence = confidence

        if best_index is None or best_result is None or best_confidence is None:
            selections.append(None)
            continue

        claimed.add(best_index)
        selections.append(build_suggestion(bank, candidates[best_index], best_result, best_confidence, config))

    return selections, claimed


def find_best_matches(
    bank_transaction: Any,
    candidates: Iterable[Any],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> list[MatchSuggestion]:
    """Rank every candidate that would qualify as a pair for one bank line.

    Uses the same floor and tiers as pair matching but claims nothing, so
    a reviewer can pick an alternative by hand. Highest score first; equal
    scores keep candidate order.
    """
    bank = project_bank_transaction(bank_transaction)
    ranked: list[MatchSuggestion] = []
    for candidate in (project_candidate(record) for record in candidates):
        result = calculate_match_score(bank, candidate, config)
        if result.score < config.minimum_match_score:
            continue
        confidence = classify_confidence(result.score, config)
        if confidence is None:
            continue
        ranked.append(build_suggestion(bank, candidate, result, confidence, config))

    ranked.sort(key=lambda suggestion: -suggestion.score)
    return ranked


def batch_auto_match(
    bank_transactions: Iterable[Any],
    candidates: Iterable[Any],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> BatchMatchResult:
    """Run pair matching then combination matching over one snapshot.

    Accepts ORM rows, mappings or views; everything is projected first.
    Already reconciled bank lines are skipped. Output is deterministic for a
    given snapshot and config.
    """
    banks = [
        view for view in (project_bank_transaction(txn) for txn in bank_transactions) if not view.is_reconciled
    ]
    pool = [project_candidate(candidate) for candidate in candidates]
    result = BatchMatchResult(total_bank_transactions=len(banks), total_candidates=len(pool))

    with log_timing(
        "batch_auto_match",
        logger=logger,
        bank_transactions=len(banks),
        candidates=len(pool),
    ) as timing:
        table = build_score_table(banks, pool, config)
        selections, claimed = select_pair_matches(banks, pool, table, config)

        buckets = {
            ConfidenceLevel.HIGH: result.high_confidence,
            ConfidenceLevel.MEDIUM: result.medium_confidence,
            ConfidenceLevel.LOW: result.low_confidence,
        }
        for bank, suggestion in zip(banks, selections, strict=True):
            if suggestion is not None:
                buckets[suggestion.confidence].append(suggestion)
                continue

            if not config.enable_multi_transaction_matching:
                result.unmatched.append(bank)
                continue

            remaining = [candidate for index, candidate in enumerate(pool) if index not in claimed]
            multi = find_combination_match(bank, remaining, config)
            if multi is None:
                result.unmatched.append(bank)
                continue

            taken = set(multi.candidate_ids)
            for index, candidate in enumerate(pool):
                if index not in claimed and candidate.id in taken:
                    claimed.add(index)
            result.multi_matches.append(multi)

        timing["pair_matches"] = len(result.high_confidence) + len(result.medium_confidence) + len(
            result.low_confidence
        )
        timing["multi_matches"] = len(result.multi_matches)
        timing["unmatched"] = len(result.unmatched)

    return result


def get_match_statistics(result: BatchMatchResult) -> MatchStatistics:
    """Summarize a batch result."""
    matchable = (
        len(result.high_confidence)
        + len(result.medium_confidence)
        + len(result.low_confidence)
        + len(result.multi_matches)
    )
    total = result.total_bank_transactions
    return MatchStatistics(
        total_bank_transactions=total,
        total_candidates=result.total_candidates,
        high_confidence_matches=len(result.high_confidence),
        medium_confidence_matches=len(result.medium_confidence),
        low_confidence_matches=len(result.low_confidence),
        multi_transaction_matches=len(result.multi_matches),
        matchable_transactions=matchable,
        unmatchable_transactions=total - matchable,
        estimated_match_rate=round(matchable / total, 4) if total else 0.0,
    )
