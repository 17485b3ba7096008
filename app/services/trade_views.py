from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from app.models.enums import BidStatus, TransparencyMode
from app.models.trade_bid import TradeBid
from app.models.trade_offer import TradeOffer
from app.schemas.trade import BidOut, MaskedBidView, OfferOut


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _decimals(values: List[Any]) -> List[Decimal]:
    return [Decimal(str(v)) for v in values or []]


def masked_buyer_label(buyer_uid: Optional[str]) -> Optional[str]:
    """Display label only; one character of the uid is not anonymization."""
    if not buyer_uid:
        return None
    return f"Buyer {buyer_uid[:1].upper()}"


def bid_to_out(bid: TradeBid) -> BidOut:
    return BidOut(
        bidId=bid.bid_id,
        orgId=bid.org_id,
        commodity=bid.commodity,
        requestedQty=bid.requested_qty,
        unit=bid.unit,
        currency=bid.currency,
        status=bid.status,
        opensAt=_iso(bid.opens_at),
        closesAt=_iso(bid.closes_at),
        closedAt=_iso(bid.closed_at),
        visibilityMode=bid.visibility_mode,
        transparencyMode=bid.transparency_mode,
        winningOfferId=bid.winning_offer_id,
        winningBuyerId=bid.winning_buyer_id,
        winningPrice=bid.winning_price,
        bidderCountSnapshot=bid.bidder_count_snapshot or 0,
        topPriceSnapshot=bid.top_price_snapshot,
        topPriceListSnapshot=_decimals(bid.top_price_list_snapshot),
        createdByUid=bid.created_by_uid,
        createdAt=_iso(bid.created_at),
        updatedAt=_iso(bid.updated_at),
    )


def offer_to_out(offer: TradeOffer) -> OfferOut:
    return OfferOut(
        offerId=offer.offer_id,
        bidId=offer.bid_id,
        buyerUid=offer.buyer_uid,
        buyerOrgId=offer.buyer_org_id,
        pricePerKg=offer.price_per_kg,
        qty=offer.qty,
        currency=offer.currency,
        status=offer.status,
        createdAt=_iso(offer.created_at),
        updatedAt=_iso(offer.updated_at),
    )


def mask_bid(bid: TradeBid) -> MaskedBidView:
    closed = bid.status == BidStatus.closed.value
    full_list = bid.transparency_mode == TransparencyMode.full_list.value
    return MaskedBidView(
        bidId=bid.bid_id,
        orgId=bid.org_id,
        commodity=bid.commodity,
        requestedQty=bid.requested_qty,
        unit=bid.unit,
        status=bid.status,
        opensAt=_iso(bid.opens_at),
        closesAt=_iso(bid.closes_at),
        visibilityMode=bid.visibility_mode,
        transparencyMode=bid.transparency_mode,
        topPrice=bid.top_price_snapshot,
        topPriceList=_decimals(bid.top_price_list_snapshot) if full_list else None,
        bidderCount=int(bid.bidder_count_snapshot or 0),
        winningPrice=bid.winning_price if closed else None,
        winnerLabel=masked_buyer_label(bid.winning_buyer_id) if closed else None,
        currency=bid.currency,
    )
