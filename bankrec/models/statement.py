"""Bank statement models."""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankrec.database import Base

if TYPE_CHECKING:
    from bankrec.models.reconciliation import ReconciliationMatch


class BankStatementStatus(str, Enum):
    """Statement reconciliation progress."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    RECONCILED = "reconciled"


class BankStatement(Base):
    """Uploaded bank statement for one account and period."""

    __tablename__ = "bank_statements"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"))
    closing_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"))

    status: Mapped[BankStatementStatus] = mapped_column(
        SQLEnum(BankStatementStatus, name="bank_statement_status_enum"),
        default=BankStatementStatus.DRAFT,
    )
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    transactions: Mapped[list["BankStatementTransaction"]] = relationship(
        "BankStatementTransaction",
        back_populates="statement",
        cascade="all, delete-orphan",
    )


class BankStatementTransaction(Base):
    """Individual line item of a bank statement."""

    __tablename__ = "bank_statement_transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    statement_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bank_statements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cheque_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # Exactly one of debit/credit is non-zero
    debit_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"))
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"))
    balance: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciled_with: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    statement: Mapped["BankStatement"] = relationship(
        "BankStatement",
        back_populates="transactions",
    )
    matches: Mapped[list["ReconciliationMatch"]] = relationship(
        "ReconciliationMatch",
        back_populates="transaction",
        cascade="all, delete-orphan",
    )
