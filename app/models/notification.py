#app/models/notification.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow


class UserNotification(Base):
    __tablename__ = "user_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    uid: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)  # BID_OPEN | BID_OFFER | BID_CLOSED
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(String(1024), nullable=False)

    org_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bid_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    commodity: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_user_notifications_uid", "uid", "created_at"),
    )
