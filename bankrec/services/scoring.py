"""Match scoring for bank reconciliation.

Scores how closely a ledger transaction resembles a bank statement line and
classifies the result into a confidence tier. Everything here is pure: the
configuration is passed explicitly and records are reduced to typed views at
the boundary so malformed ledger data can never crash a scoring run.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from bankrec.config import settings
from bankrec.logger import get_logger

logger = get_logger(__name__)

EXACT_AMOUNT_DELTA = Decimal("0.01")
NEAR_DATE_DAYS = 2


class ConfidenceLevel(str, Enum):
    """Confidence tier of a match suggestion."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SuggestionType(str, Enum):
    """How a suggestion settles its bank line."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    MULTI = "multi"


@dataclass(frozen=True)
class MatchingConfig:
    """Weights, thresholds and tolerances for one matching run."""

    exact_amount_weight: float
    date_weight: float
    reference_weight: float
    description_weight: float
    cheque_weight: float
    high_confidence_threshold: float
    medium_confidence_threshold: float
    low_confidence_threshold: float
    # Floor for proposing a pair at all, independent of the LOW tier boundary
    minimum_match_score: float
    date_tolerance_days: int
    amount_tolerance_percent: Decimal
    max_combination_size: int
    max_combination_candidates: int
    enable_multi_transaction_matching: bool = True


DEFAULT_MATCHING_CONFIG = MatchingConfig(
    exact_amount_weight=40.0,
    date_weight=30.0,
    reference_weight=15.0,
    description_weight=10.0,
    cheque_weight=20.0,
    high_confidence_threshold=80.0,
    medium_confidence_threshold=60.0,
    low_confidence_threshold=40.0,
    minimum_match_score=50.0,
    date_tolerance_days=7,
    amount_tolerance_percent=Decimal("0.05"),
    max_combination_size=4,
    max_combination_candidates=15,
    enable_multi_transaction_matching=True,
)


def load_matching_config(path: Path | None = None) -> MatchingConfig:
    """Load matching configuration from YAML, then apply env overrides.

    Returns a fresh immutable config on every call; callers thread it through
    the engine explicitly.
    """
    config = DEFAULT_MATCHING_CONFIG
    config_path = path or settings.reconciliation_config_path

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            scoring = raw.get("scoring", {})
            weights = scoring.get("weights", {})
            thresholds = scoring.get("thresholds", {})
            tolerances = scoring.get("tolerances", {})
            combination = raw.get("combination", {})

            config = MatchingConfig(
                exact_amount_weight=float(weights.get("exact_amount", config.exact_amount_weight)),
                date_weight=float(weights.get("date", config.date_weight)),
                reference_weight=float(weights.get("reference", config.reference_weight)),
                description_weight=float(weights.get("description", config.description_weight)),
                cheque_weight=float(weights.get("cheque", config.cheque_weight)),
                high_confidence_threshold=float(thresholds.get("high", config.high_confidence_threshold)),
                medium_confidence_threshold=float(thresholds.get("medium", config.medium_confidence_threshold)),
                low_confidence_threshold=float(thresholds.get("low", config.low_confidence_threshold)),
                minimum_match_score=float(thresholds.get("minimum_match_score", config.minimum_match_score)),
                date_tolerance_days=int(tolerances.get("date_days", config.date_tolerance_days)),
                amount_tolerance_percent=Decimal(
                    str(tolerances.get("amount_percent", config.amount_tolerance_percent))
                ),
                max_combination_size=int(combination.get("max_size", config.max_combination_size)),
                max_combination_candidates=int(
                    combination.get("max_candidates", config.max_combination_candidates)
                ),
                enable_multi_transaction_matching=bool(
                    combination.get("enabled", config.enable_multi_transaction_matching)
                ),
            )
        except Exception as e:
            logger.warning(
                "Failed to load matching config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )
            config = DEFAULT_MATCHING_CONFIG

    high_env = os.getenv("RECONCILIATION_HIGH_THRESHOLD")
    medium_env = os.getenv("RECONCILIATION_MEDIUM_THRESHOLD")
    floor_env = os.getenv("RECONCILIATION_MIN_SCORE")
    if high_env:
        config = replace(config, high_confidence_threshold=float(high_env))
    if medium_env:
        config = replace(config, medium_confidence_threshold=float(medium_env))
    if floor_env:
        config = replace(config, minimum_match_score=float(floor_env))

    return config


# =============================================================================
# Record projections
# =============================================================================


@dataclass(frozen=True)
class BankView:
    """Fields of a bank statement line the engine scores against."""

    id: str
    amount: Decimal
    txn_date: date | None = None
    description: str | None = None
    reference: str | None = None
    cheque_number: str | None = None
    is_reconciled: bool = False


@dataclass(frozen=True)
class CandidateView:
    """Fields of a ledger transaction; any of them may be missing."""

    id: str
    amount: Decimal | None = None
    txn_date: date | None = None
    description: str | None = None
    reference: str | None = None
    cheque_number: str | None = None


def _field(record: Any, *names: str) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, float)):
            result = Decimal(str(value))
        elif isinstance(value, str):
            result = Decimal(value.strip().replace(",", ""))
        else:
            return None
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def _to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            return None
    return None


def _to_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def project_bank_transaction(record: Any) -> BankView:
    """Reduce a bank statement line (ORM row or mapping) to a BankView."""
    if isinstance(record, BankView):
        return record
    debit = _to_decimal(_field(record, "debit_amount", "debitAmount", "debit")) or Decimal("0")
    credit = _to_decimal(_field(record, "credit_amount", "creditAmount", "credit")) or Decimal("0")
    return BankView(
        id=str(_field(record, "id")),
        amount=debit if debit else credit,
        txn_date=_to_date(_field(record, "txn_date", "transaction_date", "transactionDate")),
        description=_to_text(_field(record, "description")),
        reference=_to_text(_field(record, "reference")),
        cheque_number=_to_text(_field(record, "cheque_number", "chequeNumber")),
        is_reconciled=bool(_field(record, "is_reconciled", "isReconciled")),
    )


def project_candidate(record: Any) -> CandidateView:
    """Reduce a ledger transaction of unknown shape to a CandidateView.

    Unreadable fields become None, which the scorer treats as "no signal".
    """
    if isinstance(record, CandidateView):
        return record
    amount = _to_decimal(_field(record, "amount"))
    if not amount:
        # Zero reads as absent, the same as a missing amount
        amount = _to_decimal(_field(record, "total_amount", "totalAmount")) or amount
    return CandidateView(
        id=str(_field(record, "id")),
        amount=amount,
        txn_date=_to_date(_field(record, "txn_date", "date")),
        description=_to_text(_field(record, "description")),
        reference=_to_text(_field(record, "reference")),
        cheque_number=_to_text(_field(record, "cheque_number", "chequeNumber")),
    )


# =============================================================================
# Dimension scores
# =============================================================================


@dataclass
class ScoreResult:
    """Score of one bank line against one or more ledger transactions."""

    score: float
    reasons: list[str]
    # Per-dimension contributions, in score points
    breakdown: dict[str, float] = field(default_factory=dict)
    amount_variance: Decimal | None = None
    date_variance_days: int | None = None


def tolerance_label(config: MatchingConfig) -> str:
    """Render the amount tolerance as a percentage, e.g. '5'."""
    return f"{(config.amount_tolerance_percent * 100).normalize():f}"


def is_exact_amount(bank_amount: Decimal, other: Decimal) -> bool:
    return abs(bank_amount - other) < EXACT_AMOUNT_DELTA


def score_amount(
    bank_amount: Decimal,
    candidate_amount: Decimal | None,
    config: MatchingConfig,
) -> tuple[float, str | None]:
    """Full weight for an exact amount, half weight inside the tolerance."""
    if candidate_amount is None:
        return 0.0, None
    diff = abs(bank_amount - candidate_amount)
    if diff < EXACT_AMOUNT_DELTA:
        return config.exact_amount_weight, "Exact amount match"
    if diff < abs(bank_amount) * config.amount_tolerance_percent:
        return config.exact_amount_weight / 2, f"Close amount match (within {tolerance_label(config)}%)"
    return 0.0, None


def score_date(
    bank_date: date | None,
    candidate_date: date | None,
    config: MatchingConfig,
) -> tuple[float, str | None]:
    """Score date proximity in three tiers; a missing date is no signal."""
    if bank_date is None or candidate_date is None:
        return 0.0, None
    diff_days = abs((bank_date - candidate_date).days)
    if diff_days == 0:
        return config.date_weight, "Same date"
    if diff_days <= NEAR_DATE_DAYS:
        return config.date_weight * 2 / 3, f"Date within {NEAR_DATE_DAYS} days"
    if diff_days <= config.date_tolerance_days:
        return config.date_weight / 3, f"Date within {config.date_tolerance_days} days"
    return 0.0, None


def score_cheque(
    bank_cheque: str | None,
    candidate_cheque: str | None,
    config: MatchingConfig,
) -> tuple[float, str | None]:
    if bank_cheque and candidate_cheque and bank_cheque == candidate_cheque:
        return config.cheque_weight, "Cheque number match"
    return 0.0, None


def score_reference(
    bank_reference: str | None,
    candidate_reference: str | None,
    config: MatchingConfig,
) -> tuple[float, str | None]:
    if not bank_reference or not candidate_reference:
        return 0.0, None
    ref_a = bank_reference.lower()
    ref_b = candidate_reference.lower()
    if ref_a in ref_b or ref_b in ref_a:
        return config.reference_weight, "Reference match"
    return 0.0, None


def score_description(
    bank_description: str | None,
    candidate_description: str | None,
    config: MatchingConfig,
) -> tuple[float, str | None]:
    if not bank_description or not candidate_description:
        return 0.0, None
    desc_a = bank_description.lower()
    desc_b = candidate_description.lower()
    if desc_a in desc_b or desc_b in desc_a or any(token in desc_b for token in desc_a.split()):
        return config.description_weight, "Description similarity"
    return 0.0, None


def score_secondary_dimensions(
    bank: BankView,
    candidate: CandidateView,
    config: MatchingConfig,
) -> list[tuple[str, float, str | None]]:
    """Score every dimension except amount, in reason order."""
    return [
        ("date", *score_date(bank.txn_date, candidate.txn_date, config)),
        ("cheque", *score_cheque(bank.cheque_number, candidate.cheque_number, config)),
        ("reference", *score_reference(bank.reference, candidate.reference, config)),
        ("description", *score_description(bank.description, candidate.description, config)),
    ]


def calculate_match_score(
    bank: BankView,
    candidate: CandidateView,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ScoreResult:
    """Score a bank line against a single ledger transaction (0-100+)."""
    amount_points, amount_reason = score_amount(bank.amount, candidate.amount, config)
    breakdown = {"amount": amount_points}
    reasons = [amount_reason] if amount_reason else []

    for name, points, reason in score_secondary_dimensions(bank, candidate, config):
        breakdown[name] = points
        if reason:
            reasons.append(reason)

    date_variance = None
    if bank.txn_date is not None and candidate.txn_date is not None:
        date_variance = abs((bank.txn_date - candidate.txn_date).days)

    return ScoreResult(
        score=round(sum(breakdown.values()), 2),
        reasons=reasons,
        breakdown=breakdown,
        amount_variance=abs(bank.amount - candidate.amount) if candidate.amount is not None else None,
        date_variance_days=date_variance,
    )


# =============================================================================
# Confidence classification
# =============================================================================


def classify_confidence(score: float, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> ConfidenceLevel | None:
    """Map a score to a confidence tier; None means "not a suggestion"."""
    if score >= config.high_confidence_threshold:
        return ConfidenceLevel.HIGH
    if score >= config.medium_confidence_threshold:
        return ConfidenceLevel.MEDIUM
    if score >= config.low_confidence_threshold:
        return ConfidenceLevel.LOW
    return None
