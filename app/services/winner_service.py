from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.enums import ELIGIBLE_OFFER_STATUSES, BidStatus, OfferStatus
from app.models.trade_bid import TradeBid
from app.models.trade_offer import TradeOffer
from app.services.notification_service import FARMER_ROLES, NotificationService

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


@dataclass
class CloseOutcome:
    bid: TradeBid
    closed_at: datetime
    winner: Optional[TradeOffer] = None
    losers: List[TradeOffer] = field(default_factory=list)

    @property
    def winning_offer_id(self) -> Optional[str]:
        return self.winner.offer_id if self.winner else None

    @property
    def winning_price(self) -> Optional[Decimal]:
        return self.winner.price_per_kg if self.winner else None


def rank_offers(offers: Sequence[TradeOffer]) -> List[TradeOffer]:
    """
    Eligible offers, highest price first.
    Equal prices keep store order; no tie-break policy is applied.
    """
    eligible = [o for o in offers if o.status in ELIGIBLE_OFFER_STATUSES]
    return sorted(eligible, key=lambda o: Decimal(o.price_per_kg), reverse=True)


def pick_winner(
    ranked: Sequence[TradeOffer], winner_offer_id: Optional[str] = None
) -> Optional[TradeOffer]:
    if winner_offer_id:
        for offer in ranked:
            if offer.offer_id == winner_offer_id:
                return offer
    return ranked[0] if ranked else None


class WinnerService:
    """
    Closes a bid and settles its offers in one transaction.

    The conditional UPDATE ... WHERE status = 'open' is the only gate:
    whichever caller (staff or sweep) lands it first wins, every other
    caller gets ConflictError and writes nothing.
    """

    def __init__(self, notifications: Optional[NotificationService] = None):
        self.notifications = notifications or NotificationService()

    def _get_bid_for_update(
        self, db: Session, bid_id: str, org_id: Optional[str] = None
    ) -> TradeBid:
        stmt = select(TradeBid).where(TradeBid.bid_id == bid_id)
        if org_id is not None:
            stmt = stmt.where(TradeBid.org_id == org_id)
        bid = db.execute(stmt.with_for_update()).scalar_one_or_none()
        if not bid:
            raise NotFoundError("Bid not found")
        return bid

    def _offers(self, db: Session, bid_id: str) -> List[TradeOffer]:
        return list(
            db.execute(
                select(TradeOffer).where(TradeOffer.bid_id == bid_id).with_for_update()
            )
            .scalars()
            .all()
        )

    # -----------------------------------------------------------------
    # close
    # -----------------------------------------------------------------

    def close_bid(
        self,
        db: Session,
        bid_id: str,
        *,
        org_id: Optional[str] = None,
        winner_offer_id: Optional[str] = None,
        notify: bool = True,
    ) -> CloseOutcome:
        bid = self._get_bid_for_update(db, bid_id, org_id)
        if bid.status != BidStatus.open.value:
            raise ConflictError("Bid is not open")

        offers = self._offers(db, bid_id)
        ranked = rank_offers(offers)
        winner = pick_winner(ranked, winner_offer_id)
        closed_at = _now()

        result = db.execute(
            update(TradeBid)
            .where(
                TradeBid.bid_id == bid_id,
                TradeBid.status == BidStatus.open.value,
            )
            .values(
                status=BidStatus.closed.value,
                closed_at=closed_at,
                winning_offer_id=winner.offer_id if winner else None,
                winning_buyer_id=winner.buyer_uid if winner else None,
                winning_price=winner.price_per_kg if winner else None,
                updated_at=closed_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConflictError("Bid is not open")

        losers = [o for o in ranked if winner is None or o.offer_id != winner.offer_id]
        if winner:
            self._settle(db, [winner.offer_id], OfferStatus.winning, closed_at)
        self._settle(db, [o.offer_id for o in losers], OfferStatus.lost, closed_at)

        db.commit()
        db.refresh(bid)

        logger.info(
            "trade_bid_closed",
            extra={
                "bid_id": bid_id,
                "org_id": bid.org_id,
                "winning_offer_id": bid.winning_offer_id,
                "eligible_offers": len(ranked),
            },
        )

        outcome = CloseOutcome(bid=bid, closed_at=closed_at, winner=winner, losers=losers)
        if notify:
            self._notify_closed(db, bid, offers, outcome)
        return outcome

    def _settle(
        self,
        db: Session,
        offer_ids: List[str],
        status: OfferStatus,
        at: datetime,
    ) -> None:
        if not offer_ids:
            return
        db.execute(
            update(TradeOffer)
            .where(
                TradeOffer.offer_id.in_(offer_ids),
                TradeOffer.status.in_(ELIGIBLE_OFFER_STATUSES),
            )
            .values(status=status.value, updated_at=at)
            .execution_options(synchronize_session=False)
        )

    def _notify_closed(
        self,
        db: Session,
        bid: TradeBid,
        offers: Sequence[TradeOffer],
        outcome: CloseOutcome,
    ) -> None:
        buyer_uids = [o.buyer_uid for o in offers]
        farmer_uids = self.notifications.org_member_uids(db, bid.org_id, FARMER_ROLES)
        if outcome.winner:
            message = (
                f"Winning price is {bid.currency} {outcome.winner.price_per_kg}/kg."
            )
        else:
            message = "Bid closed without a winning offer."
        self.notifications.notify(
            db,
            buyer_uids + farmer_uids,
            type="BID_CLOSED",
            title=f"{bid.commodity} bid closed",
            message=message,
            org_id=bid.org_id,
            bid_id=bid.bid_id,
            commodity=bid.commodity,
        )

    # -----------------------------------------------------------------
    # retroactive correction
    # -----------------------------------------------------------------

    def correct_winner(
        self,
        db: Session,
        bid_id: str,
        *,
        org_id: Optional[str] = None,
        winner_offer_id: Optional[str] = None,
    ) -> TradeBid:
        """
        Rewrites the winner fields of an already closed bid.
        Candidates are offers that were settled at close (winning/lost);
        offer rows and bid status are left untouched.
        """
        bid = self._get_bid_for_update(db, bid_id, org_id)
        if bid.status != BidStatus.closed.value:
            raise ConflictError("Only closed bids can have their winner corrected")

        settled = [
            o
            for o in self._offers(db, bid_id)
            if o.status in (OfferStatus.winning.value, OfferStatus.lost.value)
        ]
        if winner_offer_id:
            winner = next((o for o in settled if o.offer_id == winner_offer_id), None)
        else:
            winner = max(settled, key=lambda o: Decimal(o.price_per_kg), default=None)
        if winner is None:
            raise ConflictError("No eligible offer found")

        result = db.execute(
            update(TradeBid)
            .where(
                TradeBid.bid_id == bid_id,
                TradeBid.status == BidStatus.closed.value,
            )
            .values(
                winning_offer_id=winner.offer_id,
                winning_buyer_id=winner.buyer_uid,
                winning_price=winner.price_per_kg,
                updated_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConflictError("Bid is no longer closed")

        db.commit()
        db.refresh(bid)
        logger.info(
            "trade_bid_winner_corrected",
            extra={"bid_id": bid_id, "winning_offer_id": winner.offer_id},
        )
        return bid
