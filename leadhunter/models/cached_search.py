"""CachedSearch model: persistent provider result cache with expiry."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from leadhunter.models.base import Base, JSONType


class CachedSearch(Base):
    """Database-backed cache for provider result pools and per-person records."""

    __tablename__ = "cached_searches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # search | person
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
