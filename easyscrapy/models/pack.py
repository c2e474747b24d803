"""Pack model: static catalog of purchasable extraction volumes."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from easyscrapy_cli.utils import now_utc
from .base import Base


class Pack(Base):
    __tablename__ = "packs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    nb_downloads: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)  # MGA
    price_eur: Mapped[int | None] = mapped_column(Integer, nullable=True)  # cents
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="eur")
    price_label: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    popular: Mapped[bool] = mapped_column(Boolean, default=False)
    stripe_price_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    stripe_price_id_mga: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
