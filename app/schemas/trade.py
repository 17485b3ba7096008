from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, TypeAdapter, condecimal
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError


# --- Numeric primitives ---
# scale matches the Numeric(14, 2) columns
PositiveAmount = condecimal(gt=0, max_digits=14, decimal_places=2)

_amount_adapter = TypeAdapter(PositiveAmount)
_timestamp_adapter = TypeAdapter(datetime)


def parse_amount(value: object, field: str) -> Decimal:
    """
    Service-side twin of the PositiveAmount body field, for callers that
    reach the services without going through a request model.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be > 0 with at most 2 decimal places")
    try:
        return _amount_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValidationError(f"{field} must be > 0 with at most 2 decimal places")


def parse_timestamp(value: object, field: str) -> datetime:
    """Naive timestamps are taken as UTC."""
    try:
        parsed = _timestamp_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValidationError(f"{field} must be a valid ISO date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# --- Requests ---

class BidCreateRequest(BaseModel):
    """
    Org staff opens a bid. Commodity, unit and modes are normalized by the
    bid service; quantity and dates are typed here.
    """
    bidId: Optional[str] = Field(default=None, max_length=64)
    commodity: Optional[str] = None
    requestedQty: PositiveAmount
    unit: Optional[str] = "kg"
    opensAt: Optional[datetime] = None
    closesAt: datetime
    visibilityMode: Optional[str] = None
    transparencyMode: Optional[str] = None


class WinnerRequest(BaseModel):
    winnerOfferId: Optional[str] = None


class OfferCreateRequest(BaseModel):
    pricePerKg: PositiveAmount
    qty: PositiveAmount


# --- Staff views (full detail) ---

class BidOut(BaseModel):
    bidId: str
    orgId: str
    commodity: str
    requestedQty: Decimal
    unit: str
    currency: str
    status: str
    opensAt: str
    closesAt: str
    closedAt: Optional[str] = None
    visibilityMode: str
    transparencyMode: str
    winningOfferId: Optional[str] = None
    winningBuyerId: Optional[str] = None
    winningPrice: Optional[Decimal] = None
    bidderCountSnapshot: int = 0
    topPriceSnapshot: Optional[Decimal] = None
    topPriceListSnapshot: List[Decimal] = Field(default_factory=list)
    createdByUid: str
    createdAt: str
    updatedAt: str


class OfferOut(BaseModel):
    offerId: str
    bidId: str
    buyerUid: str
    buyerOrgId: Optional[str] = None
    pricePerKg: Decimal
    qty: Decimal
    currency: str
    status: str
    createdAt: str
    updatedAt: str


# --- Masked views (buyers / farmers / public) ---

class MaskedBidView(BaseModel):
    """
    No buyer identity, no per-offer rows.
    topPriceList only when the bid runs in full_list transparency.
    """
    bidId: str
    orgId: str
    commodity: str
    requestedQty: Decimal
    unit: str
    status: str
    opensAt: str
    closesAt: str
    visibilityMode: str
    transparencyMode: str
    topPrice: Optional[Decimal] = None
    topPriceList: Optional[List[Decimal]] = None
    bidderCount: int = 0
    winningPrice: Optional[Decimal] = None
    winnerLabel: Optional[str] = None
    currency: str


# --- Envelopes ---

class BidEnvelope(BaseModel):
    ok: bool = True
    bid: BidOut


class BidListEnvelope(BaseModel):
    ok: bool = True
    items: List[BidOut]


class OfferEnvelope(BaseModel):
    ok: bool = True
    offer: OfferOut


class OfferListEnvelope(BaseModel):
    ok: bool = True
    bidId: str
    offers: List[OfferOut]


class MaskedListEnvelope(BaseModel):
    ok: bool = True
    currency: Optional[str] = None
    items: List[MaskedBidView]


class MaskedResultEnvelope(BaseModel):
    ok: bool = True
    result: MaskedBidView


class CloseResultEnvelope(BaseModel):
    ok: bool = True
    bidId: str
    status: str
    winningOfferId: Optional[str] = None
    winningPrice: Optional[Decimal] = None


class WinnerSetEnvelope(BaseModel):
    ok: bool = True
    bidId: str
    status: str
    winningOfferId: Optional[str] = None
    winningPrice: Optional[Decimal] = None
    message: str = "Winner set successfully"


class WithdrawEnvelope(BaseModel):
    ok: bool = True
    offerId: str
    status: str
