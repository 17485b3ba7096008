#app/models/org_membership.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, UTCDateTime, utcnow


class UserMembership(Base):
    """
    Per-user mirror of cooperative memberships.
    Maintained by the accounts side; may disagree with OrgMember.
    """
    __tablename__ = "user_memberships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    org_id: Mapped[str] = mapped_column(String(128), nullable=False)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="active",
        doc="active | pending | removed",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_uid", "org_id", name="uq_user_membership"),
        Index("ix_user_membership_user", "user_uid"),
    )


class OrgMember(Base):
    """
    Per-org member roster (farmers, members, staff, admins).
    """
    __tablename__ = "org_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    org_id: Mapped[str] = mapped_column(String(128), nullable=False)
    member_uid: Mapped[str] = mapped_column(String(128), nullable=False)

    role: Mapped[str] = mapped_column(String(32), nullable=False)  # farmer | member | org_staff | org_admin
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # null counts as active

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "member_uid", name="uq_org_member"),
        Index("ix_org_member_uid", "member_uid"),
    )
