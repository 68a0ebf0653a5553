"""CreditLedgerEntry model: append-only audit trail of balance changes."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadhunter.models.base import Base


class CreditLedgerEntry(Base):
    """One signed balance change. Never updated or deleted."""

    __tablename__ = "credit_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 1), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 1), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # reserve | debit | refund | admin_adjust
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    related_task_id: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
