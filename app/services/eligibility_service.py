from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.commodity_contribution import CollectionItem, CommodityContribution
from app.models.enums import VisibilityMode
from app.models.org_membership import OrgMember, UserMembership
from app.models.trade_bid import TradeBid
from app.policies.rbac import Principal
from app.policies.trade_policies import enforce_farmer_access

logger = logging.getLogger(__name__)

Lookup = Tuple[str, Callable[[], Iterable[str]]]


def tolerant_union(
    lookups: Sequence[Lookup],
    on_error: Optional[Callable[[], None]] = None,
) -> Set[str]:
    """
    Union of every lookup that succeeds.

    A lookup that raises contributes nothing and does not stop the others;
    on_error runs after each failure (e.g. to reset a broken session).
    """
    merged: Set[str] = set()
    for name, lookup in lookups:
        try:
            merged.update(v for v in lookup() if v)
        except Exception as exc:
            logger.warning("lookup_failed", extra={"source": name, "error": str(exc)})
            if on_error is not None:
                on_error()
    return merged


def is_bid_visible(bid: TradeBid, eligible_commodities: Set[str]) -> bool:
    if bid.visibility_mode == VisibilityMode.all_members.value:
        return True
    return (bid.commodity or "").lower() in eligible_commodities


class EligibilityService:
    # ---------------------------
    # membership sources
    # ---------------------------

    def _mirror_org_ids(self, db: Session, uid: str) -> List[str]:
        return list(
            db.execute(
                select(UserMembership.org_id).where(
                    UserMembership.user_uid == uid,
                    or_(UserMembership.status.is_(None), UserMembership.status == "active"),
                )
            )
            .scalars()
            .all()
        )

    def _roster_org_ids(self, db: Session, uid: str) -> List[str]:
        return list(
            db.execute(
                select(OrgMember.org_id).where(
                    OrgMember.member_uid == uid,
                    or_(OrgMember.status.is_(None), OrgMember.status == "active"),
                )
            )
            .scalars()
            .all()
        )

    def membership_org_ids(self, db: Session, uid: str) -> Set[str]:
        return tolerant_union(
            [
                ("user_memberships", lambda: self._mirror_org_ids(db, uid)),
                ("org_members", lambda: self._roster_org_ids(db, uid)),
            ],
            on_error=db.rollback,
        )

    # ---------------------------
    # contribution sources
    # ---------------------------

    def _contributed(self, db: Session, uid: str, org_id: str) -> List[str]:
        rows = db.execute(
            select(CommodityContribution.commodity).where(
                CommodityContribution.org_id == org_id,
                CommodityContribution.uid == uid,
            )
        ).scalars().all()
        return [str(c).lower() for c in rows if c]

    def _collected(self, db: Session, uid: str, org_id: str) -> List[str]:
        rows = db.execute(
            select(CollectionItem.commodity).where(
                CollectionItem.org_id == org_id,
                CollectionItem.uid == uid,
            )
        ).scalars().all()
        return [str(c).lower() for c in rows if c]

    def eligible_commodities(self, db: Session, uid: str, org_id: str) -> Set[str]:
        return tolerant_union(
            [
                ("commodity_contributions", lambda: self._contributed(db, uid, org_id)),
                ("collection_items", lambda: self._collected(db, uid, org_id)),
            ],
            on_error=db.rollback,
        )

    # ---------------------------
    # farmer view
    # ---------------------------

    def list_farmer_bids(self, db: Session, principal: Principal) -> List[TradeBid]:
        """
        Bids of every cooperative the farmer belongs to that they may see,
        soonest deadline first. Callers mask the rows.
        """
        enforce_farmer_access(principal)

        org_ids = self.membership_org_ids(db, principal.uid)
        if not org_ids:
            return []

        visible: List[TradeBid] = []
        for org_id in sorted(org_ids):
            commodities = self.eligible_commodities(db, principal.uid, org_id)
            bids = db.execute(
                select(TradeBid).where(TradeBid.org_id == org_id)
            ).scalars().all()
            visible.extend(b for b in bids if is_bid_visible(b, commodities))

        return sorted(visible, key=lambda b: b.closes_at)
