"""Domain errors raised by the reconciliation services."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""


class NotFoundError(ReconciliationError):
    """A referenced record does not exist."""


class StatementNotFoundError(NotFoundError):
    """Bank statement not found."""

    def __init__(self, statement_id: object) -> None:
        super().__init__(f"Bank statement not found: {statement_id}")
        self.statement_id = statement_id


class BankTransactionNotFoundError(NotFoundError):
    """Bank transaction not found."""

    def __init__(self, bank_txn_id: object) -> None:
        super().__init__(f"Bank transaction not found: {bank_txn_id}")
        self.bank_txn_id = bank_txn_id


class LedgerTransactionNotFoundError(NotFoundError):
    """Ledger transaction not found."""

    def __init__(self, candidate_id: object) -> None:
        super().__init__(f"Ledger transaction not found: {candidate_id}")
        self.candidate_id = candidate_id


class MatchNotFoundError(NotFoundError):
    """The bank transaction has no recorded match."""

    def __init__(self, bank_txn_id: object) -> None:
        super().__init__(f"No match recorded for bank transaction: {bank_txn_id}")
        self.bank_txn_id = bank_txn_id


class MatchConflictError(ReconciliationError):
    """A record involved in a match is already reconciled."""
