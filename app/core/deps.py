# /app/core/deps.py
from fastapi import Request

from app.services.eligibility_service import EligibilityService
from app.services.offers_service import OfferService
from app.services.trade_bids_service import TradeBidService


def get_bid_service(request: Request) -> TradeBidService:
    return request.app.state.bid_service


def get_offer_service(request: Request) -> OfferService:
    return request.app.state.offer_service


def get_eligibility_service(request: Request) -> EligibilityService:
    return request.app.state.eligibility_service
