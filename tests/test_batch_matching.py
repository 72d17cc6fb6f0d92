"""Tests for the batch orchestrator and its statistics."""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from bankrec.services.reconciliation import batch_auto_match, get_match_statistics
from bankrec.services.scoring import DEFAULT_MATCHING_CONFIG, BankView, CandidateView, SuggestionType

BASE_DATE = date(2024, 6, 15)


def _bank(bank_id: str, amount: str, txn_date: date | None = BASE_DATE, **extra) -> dict:
    return {"id": bank_id, "credit_amount": amount, "txn_date": txn_date, **extra}


def _candidate(candidate_id: str, amount: str, txn_date: date | None = BASE_DATE, **extra) -> dict:
    return {"id": candidate_id, "amount": amount, "txn_date": txn_date, **extra}


def _mixed_snapshot() -> tuple[list[dict], list[dict]]:
    banks = [
        _bank("b-high", "100.00", description="ACME payment"),
        _bank("b-medium", "200.00"),
        _bank("b-low", "300.00"),
        _bank("b-multi", "1000.00", None),
        _bank("b-none", "42.00"),
    ]
    candidates = [
        _candidate("c-high", "100.00", description="acme"),
        _candidate("c-medium", "200.00", BASE_DATE + timedelta(days=2)),
        _candidate("c-low", "300.00", BASE_DATE - timedelta(days=6)),
        _candidate("c-600", "600.00", None),
        _candidate("c-400", "400.00", None),
    ]
    return banks, candidates


def test_results_are_bucketed_by_confidence() -> None:
    banks, candidates = _mixed_snapshot()

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert [(s.bank_transaction_id, s.candidate_id, s.score) for s in result.high_confidence] == [
        ("b-high", "c-high", 80.0)
    ]
    assert [(s.bank_transaction_id, s.score) for s in result.medium_confidence] == [("b-medium", 60.0)]
    assert [(s.bank_transaction_id, s.score) for s in result.low_confidence] == [("b-low", 50.0)]
    assert [(m.bank_transaction_id, m.candidate_ids) for m in result.multi_matches] == [
        ("b-multi", ["c-600", "c-400"])
    ]
    assert [bank.id for bank in result.unmatched] == ["b-none"]


def test_statistics_summarize_the_run() -> None:
    banks, candidates = _mixed_snapshot()

    stats = get_match_statistics(batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG))

    assert stats.total_bank_transactions == 5
    assert stats.total_candidates == 5
    assert stats.high_confidence_matches == 1
    assert stats.medium_confidence_matches == 1
    assert stats.low_confidence_matches == 1
    assert stats.multi_transaction_matches == 1
    assert stats.matchable_transactions == 4
    assert stats.unmatchable_transactions == 1
    assert stats.estimated_match_rate == 0.8


def test_split_payment_scenario_produces_one_multi_match() -> None:
    banks = [BankView(id="bank-1", amount=Decimal("1000.00"))]
    candidates = [
        CandidateView(id="cand-600", amount=Decimal("600.00")),
        CandidateView(id="cand-400", amount=Decimal("400.00")),
    ]

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert result.high_confidence == result.medium_confidence == result.low_confidence == []
    assert len(result.multi_matches) == 1
    assert set(result.multi_matches[0].candidate_ids) == {"cand-600", "cand-400"}
    assert result.multi_matches[0].score == DEFAULT_MATCHING_CONFIG.exact_amount_weight
    assert result.multi_matches[0].match_type is SuggestionType.MULTI


def test_empty_statement_has_defined_zero_rate() -> None:
    result = batch_auto_match([], [_candidate("c1", "10.00")], DEFAULT_MATCHING_CONFIG)
    stats = get_match_statistics(result)

    assert stats.total_bank_transactions == 0
    assert stats.total_candidates == 1
    assert stats.matchable_transactions == 0
    assert stats.unmatchable_transactions == 0
    assert stats.estimated_match_rate == 0.0


def test_running_twice_on_the_same_snapshot_is_identical() -> None:
    banks, candidates = _mixed_snapshot()

    first = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)
    second = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert first == second


def test_reconciled_bank_lines_are_skipped() -> None:
    banks = [_bank("b-done", "100.00", is_reconciled=True), _bank("b-open", "100.00")]
    candidates = [_candidate("c1", "100.00")]

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert result.total_bank_transactions == 1
    assert [s.bank_transaction_id for s in result.high_confidence + result.medium_confidence] == ["b-open"]


def test_pair_claims_are_not_reused_by_combinations() -> None:
    banks = [_bank("b-100", "100.00"), _bank("b-150", "150.00", None)]
    candidates = [_candidate("c-100", "100.00"), _candidate("c-50", "50.00", None)]

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert [s.candidate_id for s in result.medium_confidence] == ["c-100"]
    assert result.multi_matches == []
    assert [bank.id for bank in result.unmatched] == ["b-150"]


def test_combination_claims_are_not_reused_by_later_banks() -> None:
    banks = [_bank("b-1", "1000.00", None), _bank("b-2", "1000.00", None)]
    candidates = [_candidate("c-600", "600.00", None), _candidate("c-400", "400.00", None)]

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert [m.bank_transaction_id for m in result.multi_matches] == ["b-1"]
    assert [bank.id for bank in result.unmatched] == ["b-2"]


def test_debit_lines_are_matched_on_their_debit_amount() -> None:
    banks = [{"id": "b-out", "debit_amount": "75.00", "credit_amount": "0.00", "txn_date": BASE_DATE}]
    candidates = [_candidate("c-75", "75.00")]

    result = batch_auto_match(banks, candidates, DEFAULT_MATCHING_CONFIG)

    assert [s.candidate_id for s in result.medium_confidence] == ["c-75"]


def test_combinations_can_be_switched_off() -> None:
    banks, candidates = _mixed_snapshot()
    config = replace(DEFAULT_MATCHING_CONFIG, enable_multi_transaction_matching=False)

    result = batch_auto_match(banks, candidates, config)

    assert result.multi_matches == []
    assert [bank.id for bank in result.unmatched] == ["b-multi", "b-none"]
    assert [s.bank_transaction_id for s in result.high_confidence] == ["b-high"]
    assert get_match_statistics(result).multi_transaction_matches == 0
