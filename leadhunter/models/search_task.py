"""SearchTask model: one user-initiated search run and its progress log."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadhunter.models.base import Base, JSONType


class SearchTask(Base):
    """Persistent task row. Status only moves forward; terminal states are absorbing."""

    __tablename__ = "search_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    search_hash: Mapped[str] = mapped_column(String(32), nullable=False)
    params: Mapped[dict] = mapped_column(JSONType, nullable=False)
    requested_count: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    credits_used: Mapped[Decimal] = mapped_column(
        Numeric(14, 1), nullable=False, default=Decimal("0"),
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="initializing", index=True,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    logs: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
