"""Reconciliation match models."""

from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankrec.database import Base

if TYPE_CHECKING:
    from bankrec.models.statement import BankStatementTransaction


class MatchType(str, Enum):
    """How a match came to exist."""

    MANUAL = "manual"
    SUGGESTED = "suggested"


class ReconciliationMatch(Base):
    """Active match between one bank transaction and its ledger transaction(s)."""

    __tablename__ = "reconciliation_matches"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    statement_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bank_statements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    bank_txn_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bank_statement_transactions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    # Multi-transaction matches are recorded jointly on one row
    candidate_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    match_type: Mapped[MatchType] = mapped_column(
        SQLEnum(MatchType, name="match_type_enum"),
        default=MatchType.SUGGESTED,
    )
    # Scores are non-monetary; floats are acceptable for display/analysis.
    match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    matched_by: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    transaction: Mapped["BankStatementTransaction"] = relationship(
        "BankStatementTransaction",
        back_populates="matches",
    )
