"""Statement-level reconciliation workflow.

Fetches the unmatched snapshot for a statement, runs the matching engine and
applies or reverses matches through the store. Runs against the same
statement are serialized; different statements proceed concurrently.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from bankrec.logger import get_logger
from bankrec.models import BankStatement, BankStatementStatus, LedgerTransaction, MatchType, ReconciliationMatch
from bankrec.services.combination import MultiTransactionMatch
from bankrec.services.ledger_store import ReconciliationStore
from bankrec.services.match_executor import MatchExecutionResult, apply_suggestions, unmatch
from bankrec.services.reconciliation import (
    BatchMatchResult,
    MatchStatistics,
    MatchSuggestion,
    batch_auto_match,
    find_best_matches,
    get_match_statistics,
)
from bankrec.services.scoring import MatchingConfig, load_matching_config

logger = get_logger(__name__)


@dataclass(frozen=True)
class AutoMatchOptions:
    """Which buckets an auto-match run applies."""

    match_high_confidence: bool = True
    match_medium_confidence: bool = False
    match_low_confidence: bool = False
    match_multi_transactions: bool = False


@dataclass(frozen=True)
class ReconciliationProgress:
    """Reconciled share of a statement's lines."""

    total: int
    reconciled: int
    unreconciled: int
    percentage_complete: float


class ReconciliationWorkflow:
    """Suggest, auto-apply and reverse matches for bank statements."""

    def __init__(
        self,
        store: ReconciliationStore,
        config: MatchingConfig | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.config = config or load_matching_config()
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per statement; the lock is dropped at zero
        self._lock_users: Counter[str] = Counter()

    def _lock_for(self, statement_id: UUID | str) -> asyncio.Lock:
        key = str(statement_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def _exclusive(self, statement_id: UUID | str) -> AsyncIterator[None]:
        key = str(statement_id)
        lock = self._lock_for(key)
        self._lock_users[key] += 1
        try:
            async with asyncio.timeout(self.timeout):
                async with lock:
                    yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] <= 0:
                del self._lock_users[key]
                if self._locks.get(key) is lock:
                    del self._locks[key]

    async def _fetch_candidates(self, statement: BankStatement) -> list[LedgerTransaction]:
        """Unmatched ledger transactions of the account around the statement period."""
        window = timedelta(days=self.config.date_tolerance_days)
        return await self.store.fetch_unmatched_ledger_transactions(
            statement.account_id,
            statement.period_start - window,
            statement.period_end + window,
        )

    async def _match_snapshot(self, statement: BankStatement) -> BatchMatchResult:
        bank_txns = await self.store.fetch_unmatched_bank_transactions(statement.id)
        candidates = await self._fetch_candidates(statement)
        logger.debug(
            "Loaded reconciliation snapshot",
            statement_id=str(statement.id),
            bank_transactions=len(bank_txns),
            candidates=len(candidates),
        )
        return batch_auto_match(bank_txns, candidates, self.config)

    async def run_batch(self, statement_id: UUID | str) -> BatchMatchResult:
        """Run the matching engine over a statement's unmatched snapshot."""
        async with self._exclusive(statement_id):
            statement = await self.store.fetch_statement(statement_id)
            return await self._match_snapshot(statement)

    async def get_enhanced_suggested_matches(self, statement_id: UUID | str) -> list[MatchSuggestion]:
        """Pair suggestions ordered HIGH, then MEDIUM, then LOW."""
        result = await self.run_batch(statement_id)
        return [*result.high_confidence, *result.medium_confidence, *result.low_confidence]

    async def get_multi_transaction_matches(self, statement_id: UUID | str) -> list[MultiTransactionMatch]:
        result = await self.run_batch(statement_id)
        return result.multi_matches

    async def get_enhanced_match_statistics(self, statement_id: UUID | str) -> MatchStatistics:
        result = await self.run_batch(statement_id)
        return get_match_statistics(result)

    async def auto_match_transactions(
        self,
        statement_id: UUID | str,
        actor_id: str,
        options: AutoMatchOptions | None = None,
    ) -> MatchExecutionResult:
        """Match the selected confidence buckets automatically.

        By default only HIGH confidence pairs are applied.
        """
        options = options or AutoMatchOptions()
        async with self._exclusive(statement_id):
            statement = await self.store.fetch_statement(statement_id)
            result = await self._match_snapshot(statement)

            accepted: list[MatchSuggestion | MultiTransactionMatch] = []
            if options.match_high_confidence:
                accepted.extend(result.high_confidence)
            if options.match_medium_confidence:
                accepted.extend(result.medium_confidence)
            if options.match_low_confidence:
                accepted.extend(result.low_confidence)
            if options.match_multi_transactions:
                accepted.extend(result.multi_matches)

            logger.info(
                "Auto-matching statement",
                statement_id=str(statement_id),
                accepted=len(accepted),
                high=len(result.high_confidence),
                medium=len(result.medium_confidence),
                low=len(result.low_confidence),
                multi=len(result.multi_matches),
            )
            return await apply_suggestions(self.store, statement.id, accepted, actor_id)

    async def match_transactions(
        self,
        statement_id: UUID | str,
        bank_transaction_id: UUID | str,
        candidate_ids: Sequence[UUID | str],
        actor_id: str,
        notes: str | None = None,
    ) -> ReconciliationMatch:
        """Record a manual match chosen by a user."""
        async with self._exclusive(statement_id):
            statement = await self.store.fetch_statement(statement_id)
            match = await self.store.persist_match(
                statement.id,
                bank_transaction_id,
                candidate_ids,
                MatchType.MANUAL,
                actor_id,
                notes=notes,
            )
            await self.store.update_statement_status(statement.id, BankStatementStatus.IN_PROGRESS)
        return match

    async def get_candidate_matches(self, bank_transaction_id: UUID | str) -> list[MatchSuggestion]:
        """Every qualifying ledger transaction for one bank line, best first."""
        bank_txn = await self.store.fetch_bank_transaction(bank_transaction_id)
        async with self._exclusive(bank_txn.statement_id):
            statement = await self.store.fetch_statement(bank_txn.statement_id)
            candidates = await self._fetch_candidates(statement)
        return find_best_matches(bank_txn, candidates, self.config)

    async def unmatch_transaction(self, bank_transaction_id: UUID | str) -> None:
        bank_txn = await self.store.fetch_bank_transaction(bank_transaction_id)
        async with self._exclusive(bank_txn.statement_id):
            await unmatch(self.store, bank_transaction_id)

    async def get_reconciliation_stats(self, statement_id: UUID | str) -> ReconciliationProgress:
        await self.store.fetch_statement(statement_id)
        total, reconciled = await self.store.count_statement_transactions(statement_id)
        return ReconciliationProgress(
            total=total,
            reconciled=reconciled,
            unreconciled=total - reconciled,
            percentage_complete=round(reconciled / total * 100, 2) if total else 0.0,
        )
