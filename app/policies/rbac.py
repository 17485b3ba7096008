#app/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from app.core.errors import AuthorizationError
from app.models.enums import ParticipantRole


@dataclass(frozen=True)
class Principal:
    uid: str
    role: ParticipantRole
    org_id: Optional[str] = None
    display_name: str = "Unknown"

    @property
    def is_superadmin(self) -> bool:
        return self.role == ParticipantRole.SUPERADMIN

    @property
    def is_platform_admin(self) -> bool:
        return self.role in {ParticipantRole.ADMIN, ParticipantRole.SUPERADMIN}

    @property
    def is_org_actor(self) -> bool:
        return self.role in {ParticipantRole.ORG_STAFF, ParticipantRole.ORG_ADMIN}


SCHEDULER_PRINCIPAL = Principal(
    uid="system",
    role=ParticipantRole.SCHEDULER,
    display_name="Trade scheduler",
)


# --- Core action constants ---
ACTION_MANAGE_BIDS = "MANAGE_BIDS"          # create / list / close / winner / cancel
ACTION_SUBMIT_OFFER = "SUBMIT_OFFER"        # submit / withdraw own offer
ACTION_VIEW_FARMER_BIDS = "VIEW_FARMER_BIDS"
ACTION_VIEW_MARKET = "VIEW_MARKET"          # masked open list / results
ACTION_AUTO_CLOSE = "AUTO_CLOSE"

_STAFF_ACTIONS = {ACTION_MANAGE_BIDS, ACTION_VIEW_MARKET}


def allowed_actions(role: ParticipantRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    Org scoping and approval checks live in trade_policies.
    """

    if role == ParticipantRole.SUPERADMIN:
        return {
            ACTION_MANAGE_BIDS,
            ACTION_SUBMIT_OFFER,
            ACTION_VIEW_FARMER_BIDS,
            ACTION_VIEW_MARKET,
        }

    if role == ParticipantRole.ADMIN:
        return {ACTION_VIEW_FARMER_BIDS, ACTION_VIEW_MARKET}

    if role in (ParticipantRole.ORG_ADMIN, ParticipantRole.ORG_STAFF):
        return set(_STAFF_ACTIONS)

    if role == ParticipantRole.BUYER:
        return {ACTION_SUBMIT_OFFER, ACTION_VIEW_MARKET}

    if role == ParticipantRole.FARMER:
        return {ACTION_VIEW_FARMER_BIDS, ACTION_VIEW_MARKET}

    if role == ParticipantRole.MEMBER:
        return {ACTION_VIEW_MARKET}

    if role == ParticipantRole.SCHEDULER:
        return {ACTION_AUTO_CLOSE}

    raise AssertionError(f"Unhandled role {role!r}")


def require_action(principal: Principal, action: str, message: Optional[str] = None) -> None:
    if action not in allowed_actions(principal.role):
        raise AuthorizationError(
            message
            or f"Role {principal.role.value} not permitted for action {action}."
        )
