"""Tests for applying and reversing matches against the database."""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from bankrec.models import (
    BankStatement,
    BankStatementStatus,
    BankStatementTransaction,
    LedgerTransaction,
    MatchType,
    ReconciliationMatch,
)
from bankrec.services.combination import MultiTransactionMatch
from bankrec.services.errors import BankTransactionNotFoundError, MatchConflictError, MatchNotFoundError
from bankrec.services.ledger_store import ReconciliationStore
from bankrec.services.match_executor import apply_suggestions, unmatch
from bankrec.services.reconciliation import MatchSuggestion
from bankrec.services.scoring import ConfidenceLevel
from tests.factories import BankStatementFactory, BankStatementTransactionFactory, LedgerTransactionFactory


async def _reload(session_maker, model, pk):
    async with session_maker() as session:
        return await session.get(model, pk)


async def _match_count(session_maker) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count(ReconciliationMatch.id)))).scalar_one()


def _suggestion(bank_txn, ledger_txn, score: float = 70.0) -> MatchSuggestion:
    return MatchSuggestion(
        bank_transaction_id=str(bank_txn.id),
        candidate_id=str(ledger_txn.id),
        score=score,
        confidence=ConfidenceLevel.MEDIUM,
        reasons=["Exact amount match", "Same date"],
        explanation="Exact amount match; Same date",
    )


@pytest_asyncio.fixture
async def statement(db, account_id):
    statement = await BankStatementFactory.create_async(db, account_id=account_id)
    await db.commit()
    return statement


async def test_apply_marks_both_sides_and_records_match(db, store, session_maker, statement, account_id) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(db, statement=statement)
    ledger_txn = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    await db.commit()

    result = await apply_suggestions(store, statement.id, [_suggestion(bank_txn, ledger_txn)], "user-1")

    assert (result.matched, result.skipped, result.errors) == (1, 0, [])

    bank_after = await _reload(session_maker, BankStatementTransaction, bank_txn.id)
    ledger_after = await _reload(session_maker, LedgerTransaction, ledger_txn.id)
    statement_after = await _reload(session_maker, BankStatement, statement.id)
    assert bank_after.is_reconciled is True
    assert bank_after.reconciled_with == [str(ledger_txn.id)]
    assert bank_after.reconciled_by == "user-1"
    assert ledger_after.is_reconciled is True
    assert ledger_after.reconciled_with == str(bank_txn.id)
    assert statement_after.status == BankStatementStatus.IN_PROGRESS

    async with session_maker() as session:
        match = (await session.execute(select(ReconciliationMatch))).scalar_one()
    assert match.bank_txn_id == bank_txn.id
    assert match.candidate_ids == [str(ledger_txn.id)]
    assert match.match_type == MatchType.SUGGESTED
    assert match.match_score == 70.0
    assert match.matched_by == "user-1"
    assert match.account_id == account_id


async def test_multi_match_is_recorded_jointly(db, store, session_maker, statement, account_id) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(
        db, statement=statement, credit_amount=Decimal("1000.00")
    )
    first = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id, amount=Decimal("600.00"))
    second = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id, amount=Decimal("400.00"))
    await db.commit()

    multi = MultiTransactionMatch(
        bank_transaction_id=str(bank_txn.id),
        candidate_ids=[str(first.id), str(second.id)],
        score=40.0,
        confidence=ConfidenceLevel.LOW,
        total_amount=Decimal("1000.00"),
        amount_variance=Decimal("0.00"),
    )

    result = await apply_suggestions(store, statement.id, [multi], "user-1")

    assert result.matched == 1
    assert await _match_count(session_maker) == 1
    bank_after = await _reload(session_maker, BankStatementTransaction, bank_txn.id)
    assert bank_after.reconciled_with == [str(first.id), str(second.id)]
    for ledger in (first, second):
        ledger_after = await _reload(session_maker, LedgerTransaction, ledger.id)
        assert ledger_after.is_reconciled is True
        assert ledger_after.reconciled_with == str(bank_txn.id)


async def test_failed_suggestion_leaves_no_partial_state(db, store, session_maker, statement, account_id) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(db, statement=statement)
    free = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id, amount=Decimal("60.00"))
    taken = await LedgerTransactionFactory.create_async(
        db, bank_account_id=account_id, amount=Decimal("40.00"), is_reconciled=True
    )
    await db.commit()

    multi = MultiTransactionMatch(
        bank_transaction_id=str(bank_txn.id),
        candidate_ids=[str(free.id), str(taken.id)],
        score=40.0,
        confidence=ConfidenceLevel.LOW,
        total_amount=Decimal("100.00"),
        amount_variance=Decimal("0.00"),
    )

    result = await apply_suggestions(store, statement.id, [multi], "user-1")

    assert result.matched == 0
    assert result.skipped == 1
    assert result.errors[0].startswith(f"{bank_txn.id}: ")
    assert "already reconciled" in result.errors[0]
    assert await _match_count(session_maker) == 0
    assert (await _reload(session_maker, BankStatementTransaction, bank_txn.id)).is_reconciled is False
    assert (await _reload(session_maker, LedgerTransaction, free.id)).is_reconciled is False
    assert (await _reload(session_maker, BankStatement, statement.id)).status == BankStatementStatus.DRAFT


async def test_one_failure_does_not_abort_the_batch(db, session_maker, statement, account_id) -> None:
    bank_ok = await BankStatementTransactionFactory.create_async(db, statement=statement)
    bank_bad = await BankStatementTransactionFactory.create_async(db, statement=statement)
    ledger_ok = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    ledger_bad = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    await db.commit()

    class FlakyStore(ReconciliationStore):
        async def persist_match(self, statement_id, bank_transaction_id, *args, **kwargs):
            if bank_transaction_id == str(bank_bad.id):
                raise RuntimeError("Match failed")
            return await super().persist_match(statement_id, bank_transaction_id, *args, **kwargs)

    result = await apply_suggestions(
        FlakyStore(session_maker),
        statement.id,
        [_suggestion(bank_bad, ledger_bad), _suggestion(bank_ok, ledger_ok)],
        "user-1",
    )

    assert result.matched == 1
    assert result.skipped == 1
    assert len(result.errors) == 1
    assert str(bank_bad.id) in result.errors[0]
    assert "Match failed" in result.errors[0]
    assert (await _reload(session_maker, BankStatementTransaction, bank_ok.id)).is_reconciled is True
    assert (await _reload(session_maker, BankStatement, statement.id)).status == BankStatementStatus.IN_PROGRESS


async def test_applying_twice_is_rejected(db, store, statement, account_id) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(db, statement=statement)
    ledger_txn = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    other = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    await db.commit()

    await store.persist_match(statement.id, bank_txn.id, [ledger_txn.id], MatchType.MANUAL, "user-1")

    with pytest.raises(MatchConflictError):
        await store.persist_match(statement.id, bank_txn.id, [other.id], MatchType.MANUAL, "user-1")


async def test_empty_batch_does_not_touch_statement(store, session_maker, statement) -> None:
    result = await apply_suggestions(store, statement.id, [], "user-1")

    assert (result.matched, result.skipped, result.errors) == (0, 0, [])
    assert (await _reload(session_maker, BankStatement, statement.id)).status == BankStatementStatus.DRAFT


async def test_unmatch_restores_both_sides(db, store, session_maker, statement, account_id) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(db, statement=statement)
    ledger_txn = await LedgerTransactionFactory.create_async(db, bank_account_id=account_id)
    await db.commit()
    await apply_suggestions(store, statement.id, [_suggestion(bank_txn, ledger_txn)], "user-1")

    await unmatch(store, bank_txn.id)

    bank_after = await _reload(session_maker, BankStatementTransaction, bank_txn.id)
    ledger_after = await _reload(session_maker, LedgerTransaction, ledger_txn.id)
    assert bank_after.is_reconciled is False
    assert bank_after.reconciled_with is None
    assert bank_after.reconciled_at is None
    assert ledger_after.is_reconciled is False
    assert ledger_after.reconciled_with is None
    assert await _match_count(session_maker) == 0


async def test_unmatch_without_match_fails(db, store, statement) -> None:
    bank_txn = await BankStatementTransactionFactory.create_async(db, statement=statement)
    await db.commit()

    with pytest.raises(MatchNotFoundError):
        await unmatch(store, bank_txn.id)


async def test_unmatch_unknown_bank_transaction_fails(store) -> None:
    with pytest.raises(BankTransactionNotFoundError, match="Bank transaction not found"):
        await unmatch(store, uuid4())
