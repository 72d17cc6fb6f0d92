"""SQLAlchemy models package."""

from bankrec.models.ledger import LedgerTransaction, LedgerTransactionStatus
from bankrec.models.reconciliation import MatchType, ReconciliationMatch
from bankrec.models.statement import (
    BankStatement,
    BankStatementStatus,
    BankStatementTransaction,
)

__all__ = [
    "BankStatement",
    "BankStatementStatus",
    "BankStatementTransaction",
    "LedgerTransaction",
    "LedgerTransactionStatus",
    "MatchType",
    "ReconciliationMatch",
]
