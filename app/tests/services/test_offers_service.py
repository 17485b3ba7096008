from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.core.rate_limit import DatabaseRateLimiter, InMemoryRateLimiter
from app.models.enums import BidStatus, OfferStatus, ParticipantRole
from app.models.notification import UserNotification
from app.models.org_membership import OrgMember
from app.models.trade_bid import TradeBid
from app.policies.rbac import Principal
from app.services.offers_service import OfferService

BUYER = Principal(uid="buyer-1", role=ParticipantRole.BUYER, org_id="buyer-org")
OTHER_BUYER = Principal(uid="buyer-2", role=ParticipantRole.BUYER)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _service(clock=None) -> OfferService:
    return OfferService(InMemoryRateLimiter(4, 60, clock=clock or FakeClock()))


def test_submit_creates_active_offer_and_snapshot(db, make_bid, approve_buyer):
    approve_buyer("buyer-1")
    bid = make_bid(transparency_mode="full_list")

    offer = _service().submit_offer(
        db, bid_id=bid.bid_id, principal=BUYER, price_per_kg="42.50", qty=100
    )

    assert offer.status == OfferStatus.active.value
    assert offer.buyer_org_id == "buyer-org"
    assert offer.currency == "KES"
    assert Decimal(offer.price_per_kg) == Decimal("42.50")

    fresh = db.get(TradeBid, bid.bid_id)
    db.refresh(fresh)
    assert fresh.bidder_count_snapshot == 1
    assert Decimal(fresh.top_price_snapshot) == Decimal("42.50")
    assert [Decimal(p) for p in fresh.top_price_list_snapshot] == [Decimal("42.50")]


def test_duplicate_then_withdraw_then_resubmit(db, make_bid, approve_buyer):
    approve_buyer("buyer-1")
    bid = make_bid()
    svc = _service()

    first = svc.submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=100, qty=10)
    with pytest.raises(ConflictError):
        svc.submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=110, qty=10)

    withdrawn = svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id=first.offer_id, principal=BUYER)
    assert withdrawn.status == OfferStatus.withdrawn.value

    second = svc.submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=120, qty=10)
    assert second.status == OfferStatus.active.value
    assert second.offer_id != first.offer_id


def test_withdraw_updates_snapshot(db, make_bid, make_offer, approve_buyer):
    approve_buyer("buyer-1")
    bid = make_bid()
    make_offer(bid, "buyer-9", 80)
    svc = _service()
    mine = svc.submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=150, qty=10)

    svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id=mine.offer_id, principal=BUYER)

    fresh = db.get(TradeBid, bid.bid_id)
    db.refresh(fresh)
    assert fresh.bidder_count_snapshot == 1
    assert Decimal(fresh.top_price_snapshot) == Decimal("80")


def test_unapproved_buyer_is_rejected(db, make_bid):
    bid = make_bid()
    with pytest.raises(AuthorizationError):
        _service().submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=10, qty=1)


@pytest.mark.parametrize("status,verified", [("approved", False), ("PENDING", True)])
def test_approval_or_verified_flag_passes(db, make_bid, approve_buyer, status, verified):
    approve_buyer("buyer-1", approval_status=status, verified=verified)
    bid = make_bid()

    offer = _service().submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=10, qty=1)

    assert offer.status == OfferStatus.active.value


def test_staff_cannot_submit(db, make_bid):
    bid = make_bid()
    staff = Principal(uid="staff-1", role=ParticipantRole.ORG_STAFF, org_id="org-1")
    with pytest.raises(AuthorizationError):
        _service().submit_offer(db, bid_id=bid.bid_id, principal=staff, price_per_kg=10, qty=1)


def test_submit_against_closed_or_expired_bid(db, make_bid, approve_buyer):
    approve_buyer("buyer-1")
    closed = make_bid(status=BidStatus.closed.value)
    expired = make_bid(closes_in=-timedelta(minutes=1))
    svc = _service()

    with pytest.raises(ConflictError, match="not open"):
        svc.submit_offer(db, bid_id=closed.bid_id, principal=BUYER, price_per_kg=10, qty=1)
    with pytest.raises(ConflictError, match="already closed"):
        svc.submit_offer(db, bid_id=expired.bid_id, principal=BUYER, price_per_kg=10, qty=1)
    with pytest.raises(NotFoundError):
        svc.submit_offer(db, bid_id="missing", principal=BUYER, price_per_kg=10, qty=1)


@pytest.mark.parametrize(
    "price,qty",
    [
        (0, 1),
        (-5, 1),
        ("abc", 1),
        (10, 0),
        (10, None),
        (True, 1),
        ("0.004", 1),
        (10, "0.001"),
    ],
)
def test_submit_rejects_invalid_amounts(db, make_bid, approve_buyer, price, qty):
    approve_buyer("buyer-1")
    bid = make_bid()
    with pytest.raises(ValidationError):
        _service().submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=price, qty=qty)


def test_fifth_attempt_in_window_is_rate_limited(db, approve_buyer):
    approve_buyer("buyer-1")
    clock = FakeClock()
    svc = _service(clock)

    # attempts count before the bid lookup
    for _ in range(4):
        with pytest.raises(NotFoundError):
            svc.submit_offer(db, bid_id="missing", principal=BUYER, price_per_kg=10, qty=1)

    with pytest.raises(RateLimitError) as exc:
        svc.submit_offer(db, bid_id="missing", principal=BUYER, price_per_kg=10, qty=1)
    assert exc.value.status_code == 429
    assert exc.value.headers() == {"Retry-After": "60"}

    # another bid has its own window
    with pytest.raises(NotFoundError):
        svc.submit_offer(db, bid_id="missing-too", principal=BUYER, price_per_kg=10, qty=1)

    clock.advance(61)
    with pytest.raises(NotFoundError):
        svc.submit_offer(db, bid_id="missing", principal=BUYER, price_per_kg=10, qty=1)


def test_memory_limiter_forgets_drained_keys():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(4, 60, clock=clock)

    for bid_id in ("bid-1", "bid-2", "bid-3"):
        assert limiter.allow("buyer-1", bid_id) is True
    assert limiter.tracked_keys == 3

    clock.advance(61)
    assert limiter.allow("buyer-2", "bid-9") is True
    assert limiter.tracked_keys == 1


def test_database_limiter_shares_window_across_instances(db):
    clock = FakeClock()
    one = DatabaseRateLimiter(4, 60, clock=clock)
    two = DatabaseRateLimiter(4, 60, clock=clock)

    assert [one.allow("buyer-1", "bid-1", db) for _ in range(2)] == [True, True]
    assert [two.allow("buyer-1", "bid-1", db) for _ in range(2)] == [True, True]
    assert one.allow("buyer-1", "bid-1", db) is False
    assert two.allow("buyer-2", "bid-1", db) is True

    clock.advance(60.5)
    assert two.allow("buyer-1", "bid-1", db) is True


def test_withdraw_rules(db, make_bid, make_offer):
    bid = make_bid()
    mine = make_offer(bid, "buyer-1", 10)
    lost = make_offer(bid, "buyer-2", 9, status=OfferStatus.lost.value)
    svc = _service()

    with pytest.raises(AuthorizationError):
        svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id=mine.offer_id, principal=OTHER_BUYER)
    with pytest.raises(ConflictError):
        svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id=lost.offer_id, principal=OTHER_BUYER)
    with pytest.raises(NotFoundError):
        svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id="missing", principal=BUYER)

    superadmin = Principal(uid="root", role=ParticipantRole.SUPERADMIN)
    done = svc.withdraw_offer(db, bid_id=bid.bid_id, offer_id=mine.offer_id, principal=superadmin)
    assert done.status == OfferStatus.withdrawn.value


def test_submit_notifies_org_staff(db, make_bid, approve_buyer):
    approve_buyer("buyer-1")
    db.add(OrgMember(org_id="org-1", member_uid="staff-1", role="org_staff"))
    db.add(OrgMember(org_id="org-1", member_uid="farmer-1", role="farmer"))
    db.commit()
    bid = make_bid(org_id="org-1")

    _service().submit_offer(db, bid_id=bid.bid_id, principal=BUYER, price_per_kg=10, qty=1)

    rows = db.query(UserNotification).filter(UserNotification.type == "BID_OFFER").all()
    assert [r.uid for r in rows] == ["staff-1"]
