"""Apply accepted match suggestions and reverse applied matches."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from bankrec.logger import get_logger, log_exception
from bankrec.models import BankStatementStatus, MatchType
from bankrec.services.combination import MultiTransactionMatch
from bankrec.services.ledger_store import ReconciliationStore
from bankrec.services.reconciliation import MatchSuggestion

logger = get_logger(__name__)


@dataclass
class MatchExecutionResult:
    """Outcome of applying a batch of suggestions."""

    matched: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def suggestion_candidate_ids(suggestion: MatchSuggestion | MultiTransactionMatch) -> list[str]:
    if isinstance(suggestion, MultiTransactionMatch):
        return list(suggestion.candidate_ids)
    return [suggestion.candidate_id]


async def apply_suggestions(
    store: ReconciliationStore,
    statement_id: UUID | str,
    suggestions: Sequence[MatchSuggestion | MultiTransactionMatch],
    actor_id: str,
    *,
    match_type: MatchType = MatchType.SUGGESTED,
) -> MatchExecutionResult:
    """Persist each suggestion independently.

    A failing suggestion is recorded as ``"<bank transaction id>: <message>"``
    and counted as skipped; the remaining suggestions are still applied. The
    statement moves to IN_PROGRESS once anything has been matched.
    """
    result = MatchExecutionResult()

    for suggestion in suggestions:
        try:
            await store.persist_match(
                statement_id,
                suggestion.bank_transaction_id,
                suggestion_candidate_ids(suggestion),
                match_type,
                actor_id,
                score=suggestion.score,
                notes=suggestion.explanation or None,
            )
            result.matched += 1
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to apply match suggestion",
                level="warning",
                include_traceback=False,
                statement_id=str(statement_id),
                bank_txn_id=suggestion.bank_transaction_id,
            )
            result.skipped += 1
            result.errors.append(f"{suggestion.bank_transaction_id}: {e}")

    if result.matched > 0:
        await store.update_statement_status(statement_id, BankStatementStatus.IN_PROGRESS)

    logger.info(
        "Match suggestions applied",
        statement_id=str(statement_id),
        matched=result.matched,
        skipped=result.skipped,
    )
    return result


async def unmatch(store: ReconciliationStore, bank_transaction_id: UUID | str) -> None:
    """Reverse the match recorded for one bank transaction.

    Raises:
        MatchNotFoundError: the bank transaction has no recorded match.
    """
    await store.reverse_persisted_match(bank_transaction_id)
