#app/policies/trade_policies.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import AuthorizationError
from app.models.buyer_profile import BuyerProfile
from app.policies.rbac import (
    ACTION_MANAGE_BIDS,
    ACTION_SUBMIT_OFFER,
    ACTION_VIEW_FARMER_BIDS,
    Principal,
    require_action,
)


def enforce_org_access(principal: Principal, org_id: str) -> None:
    """
    Cooperative staff/admin of org_id, or a platform superadmin.
    """
    if principal.is_superadmin:
        return
    require_action(
        principal,
        ACTION_MANAGE_BIDS,
        "Only cooperative staff/admin can perform this action",
    )
    if not principal.org_id or principal.org_id != org_id:
        raise AuthorizationError("You can only manage bids for your own cooperative")


def enforce_buyer_access(principal: Principal) -> None:
    require_action(principal, ACTION_SUBMIT_OFFER, "Buyer role required")


def enforce_farmer_access(principal: Principal) -> None:
    require_action(principal, ACTION_VIEW_FARMER_BIDS, "Farmer role required")


def enforce_buyer_approved(db: Session, principal: Principal) -> None:
    """
    External compliance gate before a buyer may commit to a price.
    Platform admins bypass it.
    """
    if principal.is_platform_admin:
        return

    profile = db.execute(
        select(BuyerProfile).where(BuyerProfile.uid == principal.uid)
    ).scalar_one_or_none()

    if profile is not None:
        if (profile.approval_status or "").upper() == "APPROVED":
            return
        if profile.verified_buyer:
            return

    raise AuthorizationError(
        "Buyer approval pending. Ask compliance to verify your account first."
    )
