#app/models/trade_offer.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Numeric,
    ForeignKey,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow
from app.models.enums import OfferStatus


class TradeOffer(Base):
    __tablename__ = "trade_offers"

    offer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    bid_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("trade_bids.bid_id", ondelete="CASCADE"),
        nullable=False,
    )

    buyer_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    buyer_org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    price_per_kg: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    qty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="KES")

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OfferStatus.active.value
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("price_per_kg > 0", name="ck_trade_offers_price_positive"),
        CheckConstraint("qty > 0", name="ck_trade_offers_qty_positive"),
        Index("ix_trade_offers_bid", "bid_id"),
        Index("ix_trade_offers_buyer", "buyer_uid", "created_at"),
        # at most one active offer per (bid, buyer)
        Index(
            "uq_trade_offers_active_buyer",
            "bid_id",
            "buyer_uid",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
