# app/api/v1/trade_org.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.core.deps import get_bid_service, get_offer_service
from app.core.middleware import set_audit_context
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.trade import (
    BidCreateRequest,
    BidEnvelope,
    BidListEnvelope,
    CloseResultEnvelope,
    OfferListEnvelope,
    WinnerRequest,
    WinnerSetEnvelope,
)
from app.services.audit_service import AuditAction
from app.services.offers_service import OfferService
from app.services.trade_bids_service import TradeBidService
from app.services.trade_views import bid_to_out, offer_to_out

router = APIRouter(prefix="/trade/orgs/{org_id}/bids")


# ─────────────────────────────────────────────────────────────
# CREATE / LIST / DETAIL
# ─────────────────────────────────────────────────────────────

@router.post("", status_code=201, response_model=BidEnvelope)
def create_bid(
    org_id: str,
    req: BidCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_CREATE, org_id=org_id, bid_id=req.bidId)
    bid = svc.create_bid(
        db,
        org_id=org_id,
        principal=principal,
        commodity=req.commodity,
        requested_qty=req.requestedQty,
        unit=req.unit,
        opens_at=req.opensAt,
        closes_at=req.closesAt,
        visibility_mode=req.visibilityMode,
        transparency_mode=req.transparencyMode,
        bid_id=req.bidId,
    )
    set_audit_context(request, AuditAction.BID_CREATE, bid_id=bid.bid_id)
    return BidEnvelope(bid=bid_to_out(bid))


@router.get("", response_model=BidListEnvelope)
def list_bids(
    org_id: str,
    request: Request,
    status: Optional[str] = Query(default=None),
    commodity: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_LIST_ORG, org_id=org_id)
    rows = svc.list_bids(db, org_id=org_id, principal=principal, status=status, commodity=commodity)
    return BidListEnvelope(items=[bid_to_out(b) for b in rows])


@router.get("/{bid_id}", response_model=BidEnvelope)
def get_bid(
    org_id: str,
    bid_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_GET_ORG, org_id=org_id, bid_id=bid_id)
    bid = svc.get_bid(db, org_id=org_id, bid_id=bid_id, principal=principal)
    return BidEnvelope(bid=bid_to_out(bid))


@router.get("/{bid_id}/offers", response_model=OfferListEnvelope)
def list_offers(
    org_id: str,
    bid_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
    offers: OfferService = Depends(get_offer_service),
):
    """Staff-only: full offer rows including buyer identity."""
    set_audit_context(request, AuditAction.OFFER_LIST_ORG, org_id=org_id, bid_id=bid_id)
    svc.get_bid(db, org_id=org_id, bid_id=bid_id, principal=principal)
    rows = offers.list_offers_for_bid(db, bid_id)
    return OfferListEnvelope(bidId=bid_id, offers=[offer_to_out(o) for o in rows])


# ─────────────────────────────────────────────────────────────
# CLOSE / WINNER / CANCEL
# ─────────────────────────────────────────────────────────────

@router.post("/{bid_id}/close", response_model=CloseResultEnvelope)
def close_bid(
    org_id: str,
    bid_id: str,
    request: Request,
    req: Optional[WinnerRequest] = Body(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_CLOSE, org_id=org_id, bid_id=bid_id)
    outcome = svc.close_bid(
        db,
        org_id=org_id,
        bid_id=bid_id,
        principal=principal,
        winner_offer_id=req.winnerOfferId if req else None,
    )
    return CloseResultEnvelope(
        bidId=bid_id,
        status=outcome.bid.status,
        winningOfferId=outcome.bid.winning_offer_id,
        winningPrice=outcome.bid.winning_price,
    )


@router.post("/{bid_id}/winner", response_model=WinnerSetEnvelope)
def set_winner(
    org_id: str,
    bid_id: str,
    request: Request,
    req: Optional[WinnerRequest] = Body(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_WINNER_SELECT, org_id=org_id, bid_id=bid_id)
    bid = svc.set_winner(
        db,
        org_id=org_id,
        bid_id=bid_id,
        principal=principal,
        winner_offer_id=req.winnerOfferId if req else None,
    )
    return WinnerSetEnvelope(
        bidId=bid_id,
        status=bid.status,
        winningOfferId=bid.winning_offer_id,
        winningPrice=bid.winning_price,
    )


@router.post("/{bid_id}/cancel", response_model=BidEnvelope)
def cancel_bid(
    org_id: str,
    bid_id: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: TradeBidService = Depends(get_bid_service),
):
    set_audit_context(request, AuditAction.BID_CANCEL, org_id=org_id, bid_id=bid_id)
    bid = svc.cancel_bid(db, org_id=org_id, bid_id=bid_id, principal=principal)
    return BidEnvelope(bid=bid_to_out(bid))
