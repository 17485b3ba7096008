from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit_log import TradeAuditRecord

logger = logging.getLogger(__name__)


class AuditAction:
    # Bids
    BID_CREATE = "trade.bid.create"
    BID_LIST_ORG = "trade.bid.list.org"
    BID_GET_ORG = "trade.bid.get.org"
    BID_CLOSE = "trade.bid.close"
    BID_CANCEL = "trade.bid.cancel"
    BID_WINNER_SELECT = "trade.bid.winner.select"
    BID_LIST_OPEN = "trade.bid.list.open"
    BID_RESULT = "trade.bid.result"
    BID_AUTO_CLOSE = "trade.bid.auto_close"

    # Offers
    OFFER_LIST_ORG = "trade.offer.list.org"
    OFFER_CREATE = "trade.offer.create"
    OFFER_WITHDRAW = "trade.offer.withdraw"

    # Farmers
    FARMER_BIDS = "trade.farmer.bids"

    UNKNOWN = "trade.unknown"


class AuditService:
    """
    Best-effort writer for the trade audit trail.

    Uses its own session so a failed audit insert can never roll back
    (or be rolled back by) the request's state transition.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def write(
        self,
        *,
        request_id: Optional[str],
        actor_uid: Optional[str],
        actor_role: Optional[str],
        action: str,
        org_id: Optional[str] = None,
        bid_id: Optional[str] = None,
        offer_id: Optional[str] = None,
        status_code: Optional[int] = None,
        ip: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        row = TradeAuditRecord(
            request_id=request_id or "missing",
            actor_uid=actor_uid or "unknown",
            actor_role=actor_role,
            action=action or AuditAction.UNKNOWN,
            org_id=org_id,
            bid_id=bid_id,
            offer_id=offer_id,
            status_code=status_code,
            ip=ip,
            details_json=details,
        )
        db = self.session_factory()
        try:
            db.add(row)
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "trade_audit_write_failed",
                extra={"action": action, "bid_id": bid_id, "error": str(exc)},
            )
            return False
        finally:
            db.close()
