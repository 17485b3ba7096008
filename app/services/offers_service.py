from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.core.rate_limit import OfferRateLimiter
from app.models.enums import BidStatus, OfferStatus
from app.models.trade_bid import TradeBid
from app.models.trade_offer import TradeOffer
from app.policies.rbac import Principal
from app.policies.trade_policies import enforce_buyer_access, enforce_buyer_approved
from app.schemas.trade import parse_amount
from app.services.notification_service import STAFF_ROLES, NotificationService
from app.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class OfferService:
    def __init__(
        self,
        rate_limiter: OfferRateLimiter,
        snapshots: Optional[SnapshotService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.rate_limiter = rate_limiter
        self.snapshots = snapshots or SnapshotService()
        self.notifications = notifications or NotificationService()

    def _get_bid(self, db: Session, bid_id: str, *, for_update: bool = False) -> TradeBid:
        stmt = select(TradeBid).where(TradeBid.bid_id == bid_id)
        if for_update:
            stmt = stmt.with_for_update()
        bid = db.execute(stmt).scalar_one_or_none()
        if not bid:
            raise NotFoundError("Bid not found")
        return bid

    # -----------------------------------------------------------------
    # reads
    # -----------------------------------------------------------------

    def list_offers_for_bid(self, db: Session, bid_id: str) -> List[TradeOffer]:
        """Staff/engine read only; never hand these rows to buyers or farmers."""
        return list(
            db.execute(
                select(TradeOffer)
                .where(TradeOffer.bid_id == bid_id)
                .order_by(TradeOffer.created_at.asc())
            )
            .scalars()
            .all()
        )

    # -----------------------------------------------------------------
    # submit
    # -----------------------------------------------------------------

    def submit_offer(
        self,
        db: Session,
        *,
        bid_id: str,
        principal: Principal,
        price_per_kg: Any,
        qty: Any,
    ) -> TradeOffer:
        enforce_buyer_access(principal)
        enforce_buyer_approved(db, principal)

        if not self.rate_limiter.allow(principal.uid, bid_id, db):
            raise RateLimitError(
                "Offer rate limit exceeded. Please wait a minute.",
                retry_after_seconds=self.rate_limiter.window_seconds,
            )

        # row lock serializes with close on the same bid
        bid = self._get_bid(db, bid_id, for_update=True)
        if bid.status != BidStatus.open.value:
            raise ConflictError("Bid is not open")
        if bid.closes_at <= _now():
            raise ConflictError("Bid already closed")

        price = parse_amount(price_per_kg, "pricePerKg")
        quantity = parse_amount(qty, "qty")

        duplicate = db.execute(
            select(TradeOffer.offer_id).where(
                TradeOffer.bid_id == bid_id,
                TradeOffer.buyer_uid == principal.uid,
                TradeOffer.status == OfferStatus.active.value,
            )
        ).first()
        if duplicate:
            raise ConflictError("You already have an active offer on this bid")

        now = _now()
        offer = TradeOffer(
            offer_id=str(uuid.uuid4()),
            bid_id=bid_id,
            buyer_uid=principal.uid,
            buyer_org_id=principal.org_id,
            price_per_kg=price,
            qty=quantity,
            currency=bid.currency,
            status=OfferStatus.active.value,
            created_at=now,
            updated_at=now,
        )
        db.add(offer)
        try:
            # partial unique index is the real guard against a concurrent twin
            db.flush()
        except IntegrityError:
            db.rollback()
            raise ConflictError("You already have an active offer on this bid")

        self.snapshots.refresh(db, bid_id)
        db.commit()
        db.refresh(offer)

        logger.info(
            "trade_offer_submitted",
            extra={"bid_id": bid_id, "offer_id": offer.offer_id, "buyer_uid": principal.uid},
        )

        staff_uids = self.notifications.org_member_uids(db, bid.org_id, STAFF_ROLES)
        self.notifications.notify(
            db,
            staff_uids,
            type="BID_OFFER",
            title=f"New offer on {bid.commodity} bid",
            message=f"A buyer placed an offer at {bid.currency} {price}/kg.",
            org_id=bid.org_id,
            bid_id=bid_id,
            commodity=bid.commodity,
        )
        return offer

    # -----------------------------------------------------------------
    # withdraw
    # -----------------------------------------------------------------

    def withdraw_offer(
        self,
        db: Session,
        *,
        bid_id: str,
        offer_id: str,
        principal: Principal,
    ) -> TradeOffer:
        enforce_buyer_access(principal)
        self._get_bid(db, bid_id)

        offer = db.execute(
            select(TradeOffer).where(
                TradeOffer.offer_id == offer_id,
                TradeOffer.bid_id == bid_id,
            )
        ).scalar_one_or_none()
        if not offer:
            raise NotFoundError("Offer not found")
        if not principal.is_superadmin and offer.buyer_uid != principal.uid:
            raise AuthorizationError("You can only withdraw your own offer")
        if offer.status != OfferStatus.active.value:
            raise ConflictError("Only active offers can be withdrawn")

        result = db.execute(
            update(TradeOffer)
            .where(
                TradeOffer.offer_id == offer_id,
                TradeOffer.status == OfferStatus.active.value,
            )
            .values(status=OfferStatus.withdrawn.value, updated_at=_now())
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            # settled by a close between our read and write
            db.rollback()
            raise ConflictError("Only active offers can be withdrawn")

        self.snapshots.refresh(db, bid_id)
        db.commit()
        db.refresh(offer)

        logger.info(
            "trade_offer_withdrawn",
            extra={"bid_id": bid_id, "offer_id": offer_id, "actor_uid": principal.uid},
        )
        return offer
