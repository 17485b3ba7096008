# app/api/v1/trade_market.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.core.deps import get_bid_service, get_eligibility_service, get_offer_service
from app.core.middleware import set_audit_context
from app.db.session import get_db
from app.policies.rbac import ACTION_VIEW_MARKET, Principal, require_action
from app.schemas.trade import (
    MaskedListEnvelope,
    MaskedResultEnvelope,
    OfferCreateRequest,
    OfferEnvelope,
    WithdrawEnvelope,
)
from app.services.audit_service import AuditAction
from app.services.eligibility_service import EligibilityService
from app.services.offers_service import OfferService
from app.services.trade_bids_service import TradeBidService
from app.services.trade_views import mask_bid, offer_to_out

router = APIRouter(prefix="/trade")


# ---------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------


def _anti_leak_assert_masked(response_obj: dict) -> None:
    forbidden_keys = {"buyerUid", "buyerOrgId", "winningBuyerId", "offers", "offerId"}
    for item in response_obj.get("items", []) + [response_obj.get("result") or {}]:
        if any(k in item for k in forbidden_keys):
            raise RuntimeError("Anti-leak: attempted to return buyer identity.")


# ---------------------------------------------------------------------
# GET /trade/bids/open  (masked, cross-org)
# ---------------------------------------------------------------------


@router.get("/bids/open", response_model=MaskedListEnvelope)
def list_open_bids(
    request: Request,
    commodity: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_LIST_OPEN)
    require_action(principal, ACTION_VIEW_MARKET)
    rows = svc.list_open_bids(db, commodity=commodity)
    response = {
        "ok": True,
        "currency": svc.currency,
        "items": [mask_bid(b).model_dump() for b in rows],
    }
    _anti_leak_assert_masked(response)
    return response


# ---------------------------------------------------------------------
# buyer offers
# ---------------------------------------------------------------------


@router.post("/bids/{bid_id}/offers", status_code=201, response_model=OfferEnvelope)
def submit_offer(
    bid_id: str,
    req: OfferCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    offers: OfferService = Depends(get_offer_service),
):
    set_audit_context(request, AuditAction.OFFER_CREATE, bid_id=bid_id)
    offer = offers.submit_offer(
        db,
        bid_id=bid_id,
        principal=principal,
        price_per_kg=req.pricePerKg,
        qty=req.qty,
    )
    set_audit_context(request, AuditAction.OFFER_CREATE, offer_id=offer.offer_id)
    # the buyer sees only their own row
    return OfferEnvelope(offer=offer_to_out(offer))


@router.post("/bids/{bid_id}/offers/{offer_id}/withdraw", response_model=WithdrawEnvelope)
def withdraw_offer(
    bid_id: str,
    offer_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    offers: OfferService = Depends(get_offer_service),
):
    set_audit_context(request, AuditAction.OFFER_WITHDRAW, bid_id=bid_id, offer_id=offer_id)
    offer = offers.withdraw_offer(db, bid_id=bid_id, offer_id=offer_id, principal=principal)
    return WithdrawEnvelope(offerId=offer.offer_id, status=offer.status)


# ---------------------------------------------------------------------
# results / farmer view
# ---------------------------------------------------------------------


@router.get("/bids/{bid_id}/result", response_model=MaskedResultEnvelope)
def get_bid_result(
    bid_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_RESULT, bid_id=bid_id)
    bid = svc.get_bid_by_id(db, bid_id)
    set_audit_context(request, AuditAction.BID_RESULT, org_id=bid.org_id)
    response = {"ok": True, "result": mask_bid(bid).model_dump()}
    _anti_leak_assert_masked(response)
    return response


@router.get("/farmer/bids", response_model=MaskedListEnvelope)
def list_farmer_bids(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    eligibility: EligibilityService = Depends(get_eligibility_service),
):
    set_audit_context(request, AuditAction.FARMER_BIDS)
    rows = eligibility.list_farmer_bids(db, principal)
    response = {"ok": True, "items": [mask_bid(b).model_dump() for b in rows]}
    _anti_leak_assert_masked(response)
    return response
