import os

# settings are read at import time; point them at a throwaway database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import app.models  # noqa

from app.core.config import Settings
from app.core.security import create_principal_token
from app.db.base import Base
from app.main import create_app
from app.models.buyer_profile import BuyerProfile
from app.models.enums import BidStatus, OfferStatus
from app.models.trade_bid import TradeBid
from app.models.trade_offer import TradeOffer


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret_key=os.environ["JWT_SECRET_KEY"],
        offer_rate_limit_backend="memory",
        trade_sweep_enabled=False,
    )


@pytest.fixture
def client(session_factory, settings):
    return TestClient(create_app(session_factory=session_factory, settings=settings))


@pytest.fixture
def auth_headers():
    def _headers(uid: str, role: str, org_id: str = None) -> dict:
        token = create_principal_token(uid, role, org_id=org_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ---------------------------------------------------------------------
# seed helpers
# ---------------------------------------------------------------------


@pytest.fixture
def make_bid(db):
    def _make(
        org_id="org-1",
        commodity="kales",
        status=BidStatus.open.value,
        closes_in=timedelta(hours=2),
        **overrides,
    ) -> TradeBid:
        now = datetime.now(timezone.utc)
        closes_at = now + closes_in
        values = dict(
            bid_id=str(uuid.uuid4()),
            org_id=org_id,
            commodity=commodity,
            requested_qty=Decimal("500"),
            unit="kg",
            currency="KES",
            status=status,
            opens_at=closes_at - timedelta(days=1),
            closes_at=closes_at,
            visibility_mode="eligible_only",
            transparency_mode="top_only",
            bidder_count_snapshot=0,
            top_price_list_snapshot=[],
            created_by_uid="staff-1",
        )
        values.update(overrides)
        bid = TradeBid(**values)
        db.add(bid)
        db.commit()
        return bid

    return _make


@pytest.fixture
def make_offer(db):
    def _make(bid, buyer_uid, price, status=OfferStatus.active.value, qty="100") -> TradeOffer:
        offer = TradeOffer(
            offer_id=str(uuid.uuid4()),
            bid_id=bid.bid_id,
            buyer_uid=buyer_uid,
            price_per_kg=Decimal(str(price)),
            qty=Decimal(qty),
            currency="KES",
            status=status,
        )
        db.add(offer)
        db.commit()
        return offer

    return _make


@pytest.fixture
def approve_buyer(db):
    def _approve(uid: str, approval_status="APPROVED", verified=False) -> BuyerProfile:
        profile = BuyerProfile(uid=uid, approval_status=approval_status, verified_buyer=verified)
        db.add(profile)
        db.commit()
        return profile

    return _approve
