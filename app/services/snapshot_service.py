from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.enums import ELIGIBLE_OFFER_STATUSES, BidStatus
from app.models.trade_bid import TradeBid
from app.models.trade_offer import TradeOffer

TOP_PRICE_LIST_SIZE = 3


def _now():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OfferSummary:
    bidder_count: int
    top_price: Optional[Decimal]
    top_prices: List[Decimal] = field(default_factory=list)


def summarize_offers(offers: Iterable[TradeOffer]) -> OfferSummary:
    """
    Aggregate over offers still competing (active or winning).
    """
    prices = sorted(
        (Decimal(o.price_per_kg) for o in offers if o.status in ELIGIBLE_OFFER_STATUSES),
        reverse=True,
    )
    top = prices[:TOP_PRICE_LIST_SIZE]
    return OfferSummary(
        bidder_count=len(prices),
        top_price=top[0] if top else None,
        top_prices=top,
    )


class SnapshotService:
    """
    Sole writer of the bid *_snapshot columns.

    Runs inside the caller's transaction right after an offer mutation;
    the caller commits. Only open bids are touched.
    """

    def refresh(self, db: Session, bid_id: str) -> OfferSummary:
        db.flush()
        offers = db.execute(
            select(TradeOffer)
            .where(TradeOffer.bid_id == bid_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        summary = summarize_offers(offers)

        db.execute(
            update(TradeBid)
            .where(
                TradeBid.bid_id == bid_id,
                TradeBid.status == BidStatus.open.value,
            )
            .values(
                bidder_count_snapshot=summary.bidder_count,
                top_price_snapshot=summary.top_price,
                # JSON column: keep precision as strings
                top_price_list_snapshot=[str(p) for p in summary.top_prices],
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return summary
