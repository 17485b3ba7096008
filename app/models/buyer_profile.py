#app/models/buyer_profile.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow


class BuyerProfile(Base):
    """Compliance state for a buyer account (owned by the accounts side)."""
    __tablename__ = "buyer_profiles"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)

    approval_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # PENDING | APPROVED | REJECTED
    verified_buyer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
