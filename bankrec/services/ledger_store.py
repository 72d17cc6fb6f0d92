"""SQLAlchemy-backed store for statements, ledger transactions and matches.

Each write runs in its own session transaction, so persisting or reversing a
match is all-or-nothing while a batch of writes is not.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bankrec.logger import get_logger
from bankrec.models import (
    BankStatement,
    BankStatementStatus,
    BankStatementTransaction,
    LedgerTransaction,
    LedgerTransactionStatus,
    MatchType,
    ReconciliationMatch,
)
from bankrec.services.errors import (
    BankTransactionNotFoundError,
    LedgerTransactionNotFoundError,
    MatchConflictError,
    MatchNotFoundError,
    ReconciliationError,
    StatementNotFoundError,
)

logger = get_logger(__name__)


def _as_uuid(value: UUID | str, error: type[Exception]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise error(value) from exc


class ReconciliationStore:
    """Persistence collaborator used by the reconciliation workflow."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def fetch_statement(self, statement_id: UUID | str) -> BankStatement:
        statement_uuid = _as_uuid(statement_id, StatementNotFoundError)
        async with self._session_maker() as session:
            statement = await session.get(BankStatement, statement_uuid)
        if statement is None:
            raise StatementNotFoundError(statement_id)
        return statement

    async def fetch_bank_transaction(self, bank_transaction_id: UUID | str) -> BankStatementTransaction:
        bank_uuid = _as_uuid(bank_transaction_id, BankTransactionNotFoundError)
        async with self._session_maker() as session:
            bank_txn = await session.get(BankStatementTransaction, bank_uuid)
        if bank_txn is None:
            raise BankTransactionNotFoundError(bank_transaction_id)
        return bank_txn

    async def fetch_unmatched_bank_transactions(self, statement_id: UUID | str) -> list[BankStatementTransaction]:
        """Unreconciled lines of a statement in statement order."""
        statement_uuid = _as_uuid(statement_id, StatementNotFoundError)
        async with self._session_maker() as session:
            result = await session.execute(
                select(BankStatementTransaction)
                .where(BankStatementTransaction.statement_id == statement_uuid)
                .where(BankStatementTransaction.is_reconciled == False)  # noqa: E712
                .order_by(
                    BankStatementTransaction.txn_date,
                    BankStatementTransaction.created_at,
                    BankStatementTransaction.id,
                )
            )
            return list(result.scalars().all())

    async def fetch_unmatched_ledger_transactions(
        self,
        account_id: UUID | str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[LedgerTransaction]:
        """Unreconciled, non-void ledger transactions for an account.

        Undated transactions are always included; the scorer treats the missing
        date as no signal.
        """
        account_uuid = _as_uuid(account_id, ReconciliationError)
        query = (
            select(LedgerTransaction)
            .where(LedgerTransaction.bank_account_id == account_uuid)
            .where(LedgerTransaction.is_reconciled == False)  # noqa: E712
            .where(LedgerTransaction.status != LedgerTransactionStatus.VOID)
        )
        if date_from is not None and date_to is not None:
            query = query.where(
                or_(
                    LedgerTransaction.txn_date.is_(None),
                    LedgerTransaction.txn_date.between(date_from, date_to),
                )
            )
        query = query.order_by(LedgerTransaction.txn_date, LedgerTransaction.created_at, LedgerTransaction.id)

        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def persist_match(
        self,
        statement_id: UUID | str,
        bank_transaction_id: UUID | str,
        candidate_ids: Sequence[UUID | str],
        match_type: MatchType,
        actor_id: str,
        *,
        score: float | None = None,
        notes: str | None = None,
    ) -> ReconciliationMatch:
        """Record a match and mark both sides reconciled in one transaction."""
        if not candidate_ids:
            raise ReconciliationError("At least one ledger transaction is required to record a match")

        statement_uuid = _as_uuid(statement_id, StatementNotFoundError)
        bank_uuid = _as_uuid(bank_transaction_id, BankTransactionNotFoundError)
        ledger_uuids = [_as_uuid(candidate_id, LedgerTransactionNotFoundError) for candidate_id in candidate_ids]
        if len(set(ledger_uuids)) != len(ledger_uuids):
            raise MatchConflictError("The same ledger transaction appears twice in one match")

        now = datetime.now(UTC)
        async with self._session_maker() as session, session.begin():
            bank_txn = await session.get(BankStatementTransaction, bank_uuid, with_for_update=True)
            if bank_txn is None:
                raise BankTransactionNotFoundError(bank_transaction_id)
            if bank_txn.statement_id != statement_uuid:
                raise MatchConflictError(f"Bank transaction {bank_uuid} does not belong to statement {statement_uuid}")
            if bank_txn.is_reconciled:
                raise MatchConflictError(f"Bank transaction {bank_uuid} is already reconciled")

            result = await session.execute(
                select(LedgerTransaction).where(LedgerTransaction.id.in_(ledger_uuids)).with_for_update()
            )
            ledger_txns = {txn.id: txn for txn in result.scalars().all()}
            for ledger_uuid in ledger_uuids:
                ledger_txn = ledger_txns.get(ledger_uuid)
                if ledger_txn is None:
                    raise LedgerTransactionNotFoundError(ledger_uuid)
                if ledger_txn.is_reconciled:
                    raise MatchConflictError(f"Ledger transaction {ledger_uuid} is already reconciled")

            # Conditional writes: a concurrent run on another statement of the
            # same account may have claimed a row since it was read
            ledger_update = await session.execute(
                update(LedgerTransaction)
                .where(LedgerTransaction.id.in_(ledger_uuids))
                .where(LedgerTransaction.is_reconciled == False)  # noqa: E712
                .values(is_reconciled=True, reconciled_with=str(bank_uuid), reconciled_at=now)
                .execution_options(synchronize_session=False)
            )
            if ledger_update.rowcount != len(ledger_uuids):
                raise MatchConflictError("A ledger transaction in this match was reconciled concurrently")

            bank_update = await session.execute(
                update(BankStatementTransaction)
                .where(BankStatementTransaction.id == bank_uuid)
                .where(BankStatementTransaction.is_reconciled == False)  # noqa: E712
                .values(
                    is_reconciled=True,
                    reconciled_with=[str(ledger_uuid) for ledger_uuid in ledger_uuids],
                    reconciled_at=now,
                    reconciled_by=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if bank_update.rowcount != 1:
                raise MatchConflictError(f"Bank transaction {bank_uuid} was reconciled concurrently")

            match = ReconciliationMatch(
                statement_id=statement_uuid,
                account_id=bank_txn.account_id,
                bank_txn_id=bank_uuid,
                candidate_ids=[str(ledger_uuid) for ledger_uuid in ledger_uuids],
                match_type=match_type,
                match_score=score,
                matched_by=actor_id,
                notes=notes,
                matched_at=now,
            )
            session.add(match)
            await session.flush()

        logger.info(
            "Match persisted",
            statement_id=str(statement_uuid),
            bank_txn_id=str(bank_uuid),
            candidate_count=len(ledger_uuids),
            match_type=match_type.value,
        )
        return match

    async def reverse_persisted_match(self, bank_transaction_id: UUID | str) -> None:
        """Return both sides of a match to unreconciled and delete the match row."""
        bank_uuid = _as_uuid(bank_transaction_id, BankTransactionNotFoundError)
        async with self._session_maker() as session, session.begin():
            bank_txn = await session.get(BankStatementTransaction, bank_uuid)
            if bank_txn is None:
                raise BankTransactionNotFoundError(bank_transaction_id)

            result = await session.execute(
                select(ReconciliationMatch).where(ReconciliationMatch.bank_txn_id == bank_uuid)
            )
            match = result.scalar_one_or_none()
            if match is None:
                raise MatchNotFoundError(bank_transaction_id)

            ledger_uuids = [UUID(candidate_id) for candidate_id in match.candidate_ids or []]
            if ledger_uuids:
                ledger_result = await session.execute(
                    select(LedgerTransaction).where(LedgerTransaction.id.in_(ledger_uuids))
                )
                for ledger_txn in ledger_result.scalars().all():
                    ledger_txn.is_reconciled = False
                    ledger_txn.reconciled_with = None
                    ledger_txn.reconciled_at = None

            bank_txn.is_reconciled = False
            bank_txn.reconciled_with = None
            bank_txn.reconciled_at = None
            bank_txn.reconciled_by = None
            await session.delete(match)

        logger.info("Match reversed", bank_txn_id=str(bank_uuid), candidate_count=len(ledger_uuids))

    async def update_statement_status(self, statement_id: UUID | str, status: BankStatementStatus) -> None:
        statement_uuid = _as_uuid(statement_id, StatementNotFoundError)
        async with self._session_maker() as session, session.begin():
            statement = await session.get(BankStatement, statement_uuid)
            if statement is None:
                raise StatementNotFoundError(statement_id)
            statement.status = status

    async def count_statement_transactions(self, statement_id: UUID | str) -> tuple[int, int]:
        """Return (total, reconciled) line counts for a statement."""
        statement_uuid = _as_uuid(statement_id, StatementNotFoundError)
        async with self._session_maker() as session:
            result = await session.execute(
                select(
                    func.count(BankStatementTransaction.id),
                    func.coalesce(
                        func.sum(case((BankStatementTransaction.is_reconciled == True, 1), else_=0)),  # noqa: E712
                        0,
                    ),
                ).where(BankStatementTransaction.statement_id == statement_uuid)
            )
            total, reconciled = result.one()
        return int(total), int(reconciled)
