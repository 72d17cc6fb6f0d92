"""Split/bulk payment matching.

Finds a set of ledger transactions whose summed amount settles one bank
statement line. The search is bounded both by subset size and by the size of
the candidate pool, so pathological ledgers cannot blow it up.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from itertools import combinations

from bankrec.logger import get_logger
from bankrec.services.scoring import (
    EXACT_AMOUNT_DELTA,
    BankView,
    CandidateView,
    ConfidenceLevel,
    MatchingConfig,
    ScoreResult,
    SuggestionType,
    classify_confidence,
    score_secondary_dimensions,
    tolerance_label,
)

logger = get_logger(__name__)


@dataclass
class MultiTransactionMatch:
    """One bank line settled by several ledger transactions jointly."""

    bank_transaction_id: str
    candidate_ids: list[str]
    score: float
    confidence: ConfidenceLevel
    total_amount: Decimal
    amount_variance: Decimal
    reasons: list[str] = field(default_factory=list)
    explanation: str = ""
    match_type: SuggestionType = SuggestionType.MULTI


def combination_tolerance(bank_amount: Decimal, config: MatchingConfig) -> Decimal:
    """Allowed absolute gap between a combination total and the bank amount."""
    return max(EXACT_AMOUNT_DELTA, abs(bank_amount) * config.amount_tolerance_percent)


def prune_candidates(
    bank: BankView,
    pool: Sequence[CandidateView],
    config: MatchingConfig,
) -> list[tuple[int, CandidateView]]:
    """Select the candidates worth combining, keeping their pool positions.

    Only positive amounts below the bank amount plus tolerance can be part of
    a valid sum. The survivors are capped at ``max_combination_candidates``,
    preferring those closest in date (undated last), then pool order.
    """
    ceiling = bank.amount + combination_tolerance(bank.amount, config)
    eligible = [
        (index, candidate)
        for index, candidate in enumerate(pool)
        if candidate.amount is not None and Decimal("0") < candidate.amount < ceiling
    ]
    if len(eligible) <= config.max_combination_candidates:
        return eligible

    def proximity(item: tuple[int, CandidateView]) -> tuple[int, int, int]:
        index, candidate = item
        if bank.txn_date is None or candidate.txn_date is None:
            return (1, 0, index)
        return (0, abs((bank.txn_date - candidate.txn_date).days), index)

    kept = sorted(eligible, key=proximity)[: config.max_combination_candidates]
    logger.debug(
        "Pruned combination pool",
        bank_transaction_id=bank.id,
        eligible=len(eligible),
        kept=len(kept),
    )
    return sorted(kept, key=lambda item: item[0])


def calculate_combination_score(
    bank: BankView,
    members: Sequence[CandidateView],
    config: MatchingConfig,
) -> ScoreResult:
    """Score a candidate set against a bank line.

    The amount dimension compares the summed amount with the bank amount:
    full weight when exact, half weight otherwise (a valid combination is
    always inside tolerance). Date, cheque, reference and description each
    take the best contribution of any single member.
    """
    total = sum((member.amount or Decimal("0") for member in members), Decimal("0"))
    variance = abs(bank.amount - total)

    if variance < EXACT_AMOUNT_DELTA:
        breakdown = {"amount": config.exact_amount_weight}
        reasons = ["Exact total match"]
    else:
        breakdown = {"amount": config.exact_amount_weight / 2}
        reasons = [f"Close total match (within {tolerance_label(config)}%)"]

    best: dict[str, tuple[float, str | None]] = {}
    for member in members:
        for name, points, reason in score_secondary_dimensions(bank, member, config):
            if name not in best or points > best[name][0]:
                best[name] = (points, reason)

    for name, (points, reason) in best.items():
        breakdown[name] = points
        if reason and points > 0:
            reasons.append(reason)

    date_variance = None
    dated = [member.txn_date for member in members if member.txn_date is not None]
    if bank.txn_date is not None and dated:
        date_variance = min(abs((bank.txn_date - d).days) for d in dated)

    return ScoreResult(
        score=round(sum(breakdown.values()), 2),
        reasons=reasons,
        breakdown=breakdown,
        amount_variance=variance,
        date_variance_days=date_variance,
    )


def find_combination_match(
    bank: BankView,
    pool: Sequence[CandidateView],
    config: MatchingConfig,
) -> MultiTransactionMatch | None:
    """Find the best candidate subset whose sum settles ``bank``.

    Subsets of 2..``max_combination_size`` members are tried over the pruned
    pool. Valid subsets sum to within tolerance of the bank amount (strictly).
    Preference: higher score, fewer members, smaller variance, then earliest
    pool positions.
    """
    if bank.amount <= 0 or config.max_combination_size < 2:
        return None

    tolerance = combination_tolerance(bank.amount, config)
    pruned = prune_candidates(bank, pool, config)

    best_key: tuple | None = None
    best_members: tuple[tuple[int, CandidateView], ...] = ()
    best_result: ScoreResult | None = None

    for size in range(2, config.max_combination_size + 1):
        if size > len(pruned):
            break
        for combo in combinations(pruned, size):
            total = sum((candidate.amount for _, candidate in combo), Decimal("0"))
            variance = abs(total - bank.amount)
            if variance >= tolerance:
                continue
            members = [candidate for _, candidate in combo]
            result = calculate_combination_score(bank, members, config)
            key = (-result.score, size, variance, tuple(index for index, _ in combo))
            if best_key is None or key < best_key:
                best_key = key
                best_members = combo
                best_result = result

    if best_result is None:
        return None

    members = [candidate for _, candidate in best_members]
    total = sum((candidate.amount for candidate in members), Decimal("0"))
    # The sum constraint already qualifies the set, so it is at least LOW
    confidence = classify_confidence(best_result.score, config) or ConfidenceLevel.LOW

    return MultiTransactionMatch(
        bank_transaction_id=bank.id,
        candidate_ids=[candidate.id for candidate in members],
        score=best_result.score,
        confidence=confidence,
        total_amount=total,
        amount_variance=best_result.amount_variance or Decimal("0"),
        reasons=best_result.reasons,
        explanation=f"{len(members)} transactions totaling {total:.2f} match bank amount {bank.amount:.2f}",
    )
