from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Integer, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow


class TradeAuditRecord(Base):
    """
    Append-only trade audit trail (never UPDATE).
    One row per /trade request and one per bid closed by the sweep.
    """
    __tablename__ = "trade_audit_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Correlation
    request_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Actor
    actor_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # What happened
    action: Mapped[str] = mapped_column(String(96), nullable=False)  # e.g., trade.offer.create
    org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bid_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    offer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_trade_audit_bid", "bid_id"),
        Index("ix_trade_audit_action", "action"),
        Index("ix_trade_audit_created", "created_at"),
    )
