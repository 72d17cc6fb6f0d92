"""Accounting-side ledger transactions eligible for bank matching."""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, DateTime, Numeric, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from bankrec.database import Base


class LedgerTransactionStatus(str, Enum):
    """Posting status of a ledger transaction."""

    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class LedgerTransaction(Base):
    """Receipt, payment or journal posted against a bank account."""

    __tablename__ = "ledger_transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    bank_account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)

    txn_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    # Payments carry `amount`; invoices and bills only carry `total_amount`
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    status: Mapped[LedgerTransactionStatus] = mapped_column(
        SQLEnum(LedgerTransactionStatus, name="ledger_transaction_status_enum"),
        default=LedgerTransactionStatus.POSTED,
    )
    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciled_with: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
