from app.schemas.trade import BidCreateRequest, OfferCreateRequest, WinnerRequest
from app.schemas.trade import BidOut, OfferOut, MaskedBidView
from app.schemas.trade import (
    BidEnvelope,
    BidListEnvelope,
    OfferEnvelope,
    OfferListEnvelope,
    MaskedListEnvelope,
    MaskedResultEnvelope,
    CloseResultEnvelope,
    WinnerSetEnvelope,
    WithdrawEnvelope,
)
