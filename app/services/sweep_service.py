"""Periodic force-close of bids whose deadline has passed."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.enums import BidStatus
from app.models.trade_bid import TradeBid
from app.policies.rbac import ACTION_AUTO_CLOSE, SCHEDULER_PRINCIPAL, Principal, require_action
from app.services.audit_service import AuditAction, AuditService
from app.services.winner_service import WinnerService

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    closed_bid_ids: List[str] = field(default_factory=list)

    @property
    def closed_count(self) -> int:
        return len(self.closed_bid_ids)

    def to_dict(self) -> dict:
        return {"ok": True, "closedCount": self.closed_count, "closedBidIds": list(self.closed_bid_ids)}


class TradeSweepService:
    """
    One pass over expired open bids, per commodity.

    Holds no lock of its own: concurrent sweeps and staff closes are
    arbitrated by the open-status gate in WinnerService. Nothing is
    persisted between passes; leftovers are picked up next time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        commodities: Sequence[str],
        winner: WinnerService,
        audit: AuditService,
        batch_limit: int = 100,
        principal: Principal = SCHEDULER_PRINCIPAL,
    ):
        self.session_factory = session_factory
        self.commodities = tuple(commodities)
        self.winner = winner
        self.audit = audit
        self.batch_limit = batch_limit
        self.principal = principal

    def _expired_open_bid_ids(self, db: Session, commodity: str, now: datetime) -> List[str]:
        return list(
            db.execute(
                select(TradeBid.bid_id)
                .where(
                    TradeBid.status == BidStatus.open.value,
                    TradeBid.commodity == commodity,
                    TradeBid.closes_at <= now,
                )
                .order_by(TradeBid.closes_at.asc())
                .limit(self.batch_limit)
            )
            .scalars()
            .all()
        )

    def _still_open(self, db: Session, bid_id: str) -> Optional[TradeBid]:
        bid = db.execute(
            select(TradeBid).where(TradeBid.bid_id == bid_id)
        ).scalar_one_or_none()
        if bid is None or bid.status != BidStatus.open.value:
            return None
        return bid

    def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        require_action(self.principal, ACTION_AUTO_CLOSE)
        now = now or datetime.now(timezone.utc)
        result = SweepResult()

        db = self.session_factory()
        try:
            for commodity in self.commodities:
                for bid_id in self._expired_open_bid_ids(db, commodity, now):
                    db.expire_all()
                    bid = self._still_open(db, bid_id)
                    if bid is None:
                        logger.debug("sweep_skip_not_open", extra={"bid_id": bid_id})
                        continue
                    org_id = bid.org_id
                    try:
                        outcome = self.winner.close_bid(db, bid_id)
                    except (ConflictError, NotFoundError):
                        # a manual close or another sweep got there first
                        db.rollback()
                        logger.info("sweep_lost_race", extra={"bid_id": bid_id})
                        continue

                    result.closed_bid_ids.append(bid_id)
                    self.audit.write(
                        request_id=f"scheduler-{int(time.time() * 1000)}-{bid_id}",
                        actor_uid=self.principal.uid,
                        actor_role=self.principal.role.value,
                        action=AuditAction.BID_AUTO_CLOSE,
                        org_id=org_id,
                        bid_id=bid_id,
                        status_code=200,
                        details={"winningOfferId": outcome.winning_offer_id},
                    )
        finally:
            db.close()

        logger.info("trade_sweep_finished", extra={"closed_count": result.closed_count})
        return result


class TradeSweepScheduler:
    """Background thread that runs the sweep at a fixed interval."""

    def __init__(self, sweep: TradeSweepService, interval_seconds: float) -> None:
        self.sweep = sweep
        self.interval_seconds = max(float(interval_seconds), 1.0)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_forever, name="trade-sweep", daemon=True)
        self._thread.start()
        logger.info("Trade sweep enabled (every %s second(s)).", self.interval_seconds)

    def stop(self) -> None:
        if not self._thread:
            return
        self._stop_event.set()
        self._thread.join(timeout=5)
        self._thread = None

    def _run_forever(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self._trigger()

    def _trigger(self) -> None:
        try:
            self.sweep.run_once()
        except Exception:
            # the next tick retries whatever is still open
            logger.exception("trade_sweep_failed")
