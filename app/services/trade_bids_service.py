from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.enums import BidStatus, TransparencyMode, VisibilityMode
from app.models.trade_bid import TradeBid
from app.policies.rbac import Principal
from app.policies.trade_policies import enforce_org_access
from app.schemas.trade import parse_amount, parse_timestamp
from app.services.notification_service import FARMER_ROLES, NotificationService
from app.services.winner_service import CloseOutcome, WinnerService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------


def _now():
    return datetime.now(timezone.utc)


def normalize_commodity(value: Any, commodities: Sequence[str]) -> str:
    normalized = str(value or "").strip().lower()
    if normalized not in commodities:
        raise ValidationError(f"commodity must be one of: {', '.join(commodities)}")
    return normalized


# ---------------------------------------------------------------------
# service
# ---------------------------------------------------------------------


class TradeBidService:
    def __init__(
        self,
        *,
        commodities: Sequence[str],
        currency: str = "KES",
        open_query_limit: int = 100,
        winner: Optional[WinnerService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.commodities = tuple(commodities)
        self.currency = currency
        self.open_query_limit = open_query_limit
        self.notifications = notifications or NotificationService()
        self.winner = winner or WinnerService(self.notifications)

    # -----------------------------------------------------------------
    # create
    # -----------------------------------------------------------------

    def create_bid(
        self,
        db: Session,
        *,
        org_id: str,
        principal: Principal,
        commodity: Any,
        requested_qty: Any,
        closes_at: Any,
        unit: Optional[str] = "kg",
        opens_at: Any = None,
        visibility_mode: Optional[str] = None,
        transparency_mode: Optional[str] = None,
        bid_id: Optional[str] = None,
    ) -> TradeBid:
        enforce_org_access(principal, org_id)

        commodity_value = normalize_commodity(commodity, self.commodities)
        qty = parse_amount(requested_qty, "requestedQty")
        if str(unit or "kg").strip().lower() != "kg":
            raise ValidationError("unit must be kg")
        opens = parse_timestamp(opens_at, "opensAt") if opens_at else _now()
        closes = parse_timestamp(closes_at, "closesAt")
        if closes <= opens:
            raise ValidationError("closesAt must be after opensAt")

        # anything unrecognized falls back to the restrictive default
        visibility = (
            VisibilityMode.all_members.value
            if visibility_mode == VisibilityMode.all_members.value
            else VisibilityMode.eligible_only.value
        )
        transparency = (
            TransparencyMode.full_list.value
            if transparency_mode == TransparencyMode.full_list.value
            else TransparencyMode.top_only.value
        )

        now = _now()
        bid = TradeBid(
            bid_id=bid_id or str(uuid.uuid4()),
            org_id=org_id,
            commodity=commodity_value,
            requested_qty=qty,
            unit="kg",
            currency=self.currency,
            status=BidStatus.open.value,
            opens_at=opens,
            closes_at=closes,
            visibility_mode=visibility,
            transparency_mode=transparency,
            bidder_count_snapshot=0,
            top_price_snapshot=None,
            top_price_list_snapshot=[],
            created_by_uid=principal.uid,
            created_at=now,
            updated_at=now,
        )
        db.add(bid)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("A bid with this id already exists")
        db.refresh(bid)

        logger.info(
            "trade_bid_created",
            extra={"bid_id": bid.bid_id, "org_id": org_id, "commodity": commodity_value},
        )

        farmer_uids = self.notifications.org_member_uids(db, org_id, FARMER_ROLES)
        self.notifications.notify(
            db,
            farmer_uids,
            type="BID_OPEN",
            title=f"New {commodity_value} bid opened",
            message=f"A cooperative bid is open and closes at {closes.isoformat()}.",
            org_id=org_id,
            bid_id=bid.bid_id,
            commodity=commodity_value,
        )
        return bid

    # -----------------------------------------------------------------
    # reads
    # -----------------------------------------------------------------

    def get_bid(self, db: Session, *, org_id: str, bid_id: str, principal: Principal) -> TradeBid:
        enforce_org_access(principal, org_id)
        return self._get_org_bid(db, org_id, bid_id)

    def _get_org_bid(self, db: Session, org_id: str, bid_id: str) -> TradeBid:
        bid = db.execute(
            select(TradeBid).where(TradeBid.org_id == org_id, TradeBid.bid_id == bid_id)
        ).scalar_one_or_none()
        if not bid:
            raise NotFoundError("Bid not found")
        return bid

    def get_bid_by_id(self, db: Session, bid_id: str) -> TradeBid:
        bid = db.get(TradeBid, bid_id)
        if not bid:
            raise NotFoundError("Bid not found")
        return bid

    def list_bids(
        self,
        db: Session,
        *,
        org_id: str,
        principal: Principal,
        status: Optional[str] = None,
        commodity: Optional[str] = None,
    ) -> List[TradeBid]:
        enforce_org_access(principal, org_id)
        stmt = select(TradeBid).where(TradeBid.org_id == org_id)
        if status:
            stmt = stmt.where(TradeBid.status == status)
        if commodity:
            stmt = stmt.where(TradeBid.commodity == str(commodity).strip().lower())
        return list(db.execute(stmt.order_by(TradeBid.created_at.desc())).scalars().all())

    def list_open_bids(self, db: Session, *, commodity: Optional[str] = None) -> List[TradeBid]:
        """
        Cross-org open bids still accepting offers, soonest deadline first.
        Callers must mask the rows before returning them.
        """
        commodities = (
            [normalize_commodity(commodity, self.commodities)] if commodity else list(self.commodities)
        )
        now = _now()
        rows: List[TradeBid] = []
        for item in commodities:
            rows.extend(
                db.execute(
                    select(TradeBid)
                    .where(
                        TradeBid.status == BidStatus.open.value,
                        TradeBid.commodity == item,
                        TradeBid.closes_at > now,
                    )
                    .order_by(TradeBid.closes_at.asc())
                    .limit(self.open_query_limit)
                )
                .scalars()
                .all()
            )
        return sorted(rows, key=lambda b: b.closes_at)

    # -----------------------------------------------------------------
    # close / winner / cancel
    # -----------------------------------------------------------------

    def close_bid(
        self,
        db: Session,
        *,
        org_id: str,
        bid_id: str,
        principal: Principal,
        winner_offer_id: Optional[str] = None,
    ) -> CloseOutcome:
        enforce_org_access(principal, org_id)
        return self.winner.close_bid(
            db, bid_id, org_id=org_id, winner_offer_id=winner_offer_id
        )

    def set_winner(
        self,
        db: Session,
        *,
        org_id: str,
        bid_id: str,
        principal: Principal,
        winner_offer_id: Optional[str] = None,
    ) -> TradeBid:
        """
        Open bid: same as close. Closed bid: retroactive winner correction.
        """
        enforce_org_access(principal, org_id)
        bid = self._get_org_bid(db, org_id, bid_id)

        if bid.status == BidStatus.cancelled.value:
            raise ConflictError("Cannot pick winner for cancelled bid")
        if bid.status == BidStatus.open.value:
            try:
                return self.winner.close_bid(
                    db, bid_id, org_id=org_id, winner_offer_id=winner_offer_id
                ).bid
            except ConflictError:
                # closed under us (sweep or another staff call); fall through
                db.rollback()
        return self.winner.correct_winner(
            db, bid_id, org_id=org_id, winner_offer_id=winner_offer_id
        )

    def cancel_bid(
        self,
        db: Session,
        *,
        org_id: str,
        bid_id: str,
        principal: Principal,
    ) -> TradeBid:
        enforce_org_access(principal, org_id)
        bid = self._get_org_bid(db, org_id, bid_id)

        result = db.execute(
            update(TradeBid)
            .where(
                TradeBid.bid_id == bid_id,
                TradeBid.status == BidStatus.open.value,
            )
            .values(status=BidStatus.cancelled.value, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConflictError("Bid is not open")
        db.commit()
        db.refresh(bid)

        logger.info("trade_bid_cancelled", extra={"bid_id": bid_id, "org_id": org_id})
        return bid
