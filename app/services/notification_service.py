from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import UserNotification
from app.models.org_membership import OrgMember

logger = logging.getLogger(__name__)

FARMER_ROLES = ("member", "farmer")
STAFF_ROLES = ("org_admin", "org_staff")


class NotificationService:
    """
    Best-effort in-app notifications.
    Every public method swallows store failures after logging them.
    """

    def __init__(self, fanout_limit: int = 500):
        self.fanout_limit = fanout_limit

    def org_member_uids(
        self, db: Session, org_id: str, roles: Sequence[str] = ()
    ) -> List[str]:
        stmt = select(OrgMember.member_uid).where(
            OrgMember.org_id == org_id,
            or_(OrgMember.status.is_(None), OrgMember.status == "active"),
        )
        if roles:
            stmt = stmt.where(OrgMember.role.in_(list(roles)))
        try:
            return [uid for uid in db.execute(stmt).scalars().all() if uid]
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "org_member_lookup_failed",
                extra={"org_id": org_id, "error": str(exc)},
            )
            return []

    def notify(
        self,
        db: Session,
        uids: Iterable[Optional[str]],
        *,
        type: str,
        title: str,
        message: str,
        org_id: Optional[str] = None,
        bid_id: Optional[str] = None,
        commodity: Optional[str] = None,
    ) -> int:
        # dedupe, keep first-seen order
        unique = list(dict.fromkeys(uid for uid in uids if uid))[: self.fanout_limit]
        if not unique:
            return 0
        try:
            for uid in unique:
                db.add(
                    UserNotification(
                        uid=uid,
                        type=type,
                        title=title,
                        message=message,
                        org_id=org_id,
                        bid_id=bid_id,
                        commodity=commodity,
                    )
                )
            db.commit()
            return len(unique)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(
                "notifications_failed",
                extra={"type": type, "bid_id": bid_id, "error": str(exc)},
            )
            return 0
