#app/models/enums.py
from __future__ import annotations
from enum import Enum


class ParticipantRole(str, Enum):
    FARMER = "farmer"
    MEMBER = "member"
    BUYER = "buyer"
    ORG_STAFF = "org_staff"
    ORG_ADMIN = "org_admin"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
    # synthetic principal used by the sweep
    SCHEDULER = "scheduler"


class Commodity(str, Enum):
    kales = "kales"
    cabbage = "cabbage"
    tomatoes = "tomatoes"


class BidStatus(str, Enum):
    open = "open"
    closed = "closed"
    cancelled = "cancelled"


class OfferStatus(str, Enum):
    active = "active"
    winning = "winning"
    lost = "lost"
    withdrawn = "withdrawn"


class VisibilityMode(str, Enum):
    eligible_only = "eligible_only"
    all_members = "all_members"


class TransparencyMode(str, Enum):
    top_only = "top_only"
    full_list = "full_list"


# offers still competing for a bid
ELIGIBLE_OFFER_STATUSES = (OfferStatus.active.value, OfferStatus.winning.value)
