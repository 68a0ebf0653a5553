"""SystemConfig model: admin-editable key/value overrides (credit prices)."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadhunter.models.base import Base


class SystemConfig(Base):
    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
