#app/models/commodity_contribution.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow


class CommodityContribution(Base):
    """Produce a member delivered to their cooperative."""
    __tablename__ = "commodity_contributions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    org_id: Mapped[str] = mapped_column(String(128), nullable=False)
    uid: Mapped[str] = mapped_column(String(128), nullable=False)
    commodity: Mapped[str] = mapped_column(String(32), nullable=False)
    qty_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_contribution_org_uid", "org_id", "uid"),
    )


class CollectionItem(Base):
    """Line item of an org collection run; the run fixes the commodity."""
    __tablename__ = "collection_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    org_id: Mapped[str] = mapped_column(String(128), nullable=False)
    collection_id: Mapped[str] = mapped_column(String(64), nullable=False)
    commodity: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    uid: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_collection_item_org_uid", "org_id", "uid"),
    )
