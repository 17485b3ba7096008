#app/models/offer_submission_attempt.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime


class OfferSubmissionAttempt(Base):
    """
    Shared sliding-window counter for offer submissions.
    One row per attempt; rows older than the window are pruned on write.
    """
    __tablename__ = "offer_submission_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    limiter_key: Mapped[str] = mapped_column(String(256), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_offer_attempt_key_time", "limiter_key", "attempted_at"),
    )
