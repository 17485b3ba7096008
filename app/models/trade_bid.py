#app/models/trade_bid.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    JSON,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow
from app.models.enums import BidStatus, TransparencyMode, VisibilityMode


class TradeBid(Base):
    """
    A cooperative's time-boxed demand for a commodity.

    status: open -> closed | cancelled, never back.
    winning_* are null while open and written once by the close gate.
    *_snapshot columns belong to the snapshot projector only.
    """
    __tablename__ = "trade_bids"

    bid_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(128), nullable=False)

    commodity: Mapped[str] = mapped_column(String(32), nullable=False)
    requested_qty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    unit: Mapped[str] = mapped_column(String(8), nullable=False, default="kg")
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="KES")

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BidStatus.open.value
    )
    opens_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    closes_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    visibility_mode: Mapped[str] = mapped_column(
        String(32), nullable=False, default=VisibilityMode.eligible_only.value
    )
    transparency_mode: Mapped[str] = mapped_column(
        String(32), nullable=False, default=TransparencyMode.top_only.value
    )

    winning_offer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    winning_buyer_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    winning_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)

    bidder_count_snapshot: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    top_price_snapshot: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    top_price_list_snapshot: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)

    created_by_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("requested_qty > 0", name="ck_trade_bids_qty_positive"),
        CheckConstraint("closes_at > opens_at", name="ck_trade_bids_window"),
        CheckConstraint(
            "status IN ('open', 'closed', 'cancelled')", name="ck_trade_bids_status"
        ),
        Index("ix_trade_bids_org_created", "org_id", "created_at"),
        # sweep / open listing index: (status, commodity) ordered by closes_at
        Index("ix_trade_bids_open_by_commodity", "status", "commodity", "closes_at"),
    )
